from nested_safe_builder.cli import COMMAND_HANDLERS, build_parser


def test_required_command_surface_is_present() -> None:
    required = {
        "propose-hash",
        "approval-payload",
        "sign-hash",
        "verify-approval",
        "encode-approvals",
    }

    assert required.issubset(COMMAND_HANDLERS.keys())


def test_parser_decodes_calls_as_json() -> None:
    args = build_parser().parse_args(
        ["propose-hash", "--safe", "0xabc", "--nonce", "2", "--calls", '[{"target": "0xabc"}]']
    )

    assert args.calls == [{"target": "0xabc"}]
    assert args.nonce == 2
    assert args.chain_id is None
