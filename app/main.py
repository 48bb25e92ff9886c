from __future__ import annotations

import argparse
import json
from typing import Any, Callable
from uuid import uuid4

from app.config import configure_logging, load_config
from records.admin_service import AdminService
from records.errors import RepositoryError
from records.repository_factory import create_record_repository
from ussd.handler import UssdRequestHandler

DEFAULT_CONFIG_PATH = "config.yaml"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PCRS USSD gateway")
    subparsers = parser.add_subparsers(dest="command", required=True)

    simulate_parser = subparsers.add_parser("simulate", help="Run a USSD session on the terminal")
    simulate_parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to config.yaml or config.json")
    simulate_parser.add_argument("--msisdn", required=True)
    simulate_parser.add_argument("--session-id", default=None)

    for name, help_text in (
        ("approve", "Mark an identity as verified"),
        ("suspend", "Suspend an identity"),
        ("profile", "Print identity, recent loans and activity as JSON"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to config.yaml or config.json")
        sub.add_argument("--identity-id", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP gateway with uvicorn")
    serve_parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to config.yaml or config.json")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


def cmd_simulate(
    args: argparse.Namespace,
    config: dict[str, Any],
    handler: UssdRequestHandler | None = None,
    read_input: Callable[[str], str] = input,
) -> int:
    handler = handler or UssdRequestHandler(config)
    session_id = args.session_id or f"sim-{uuid4().hex[:12]}"
    payload = {
        "sessionID": session_id,
        "userID": "simulator",
        "newSession": True,
        "msisdn": args.msisdn,
        "userData": "",
    }
    try:
        while True:
            status, response = handler.handle_payload(payload)
            if status != 200:
                print(f"simulate failed: {response.get('error')}")
                return 1
            print(response["message"])
            if not response["continueSession"]:
                return 0
            try:
                user_data = read_input("> ")
            except EOFError:
                return 0
            payload = dict(payload, newSession=False, userData=user_data)
    finally:
        handler.close()


def cmd_admin(args: argparse.Namespace, config: dict[str, Any], admin: AdminService | None = None) -> int:
    admin = admin or AdminService(
        create_record_repository(config),
        country_code=str(config.get("phone", {}).get("country_code", "233")),
    )
    try:
        if args.command == "approve":
            record = admin.approve_identity(args.identity_id)
            print(f"identity-approved: {record.identity_id} status={record.status.value}")
        elif args.command == "suspend":
            record = admin.suspend_identity(args.identity_id)
            print(f"identity-suspended: {record.identity_id} status={record.status.value}")
        else:
            print(json.dumps(admin.read_profile(args.identity_id), ensure_ascii=False, indent=2))
    except RepositoryError as exc:
        print(f"{args.command} failed: {exc}")
        return 1
    return 0


def cmd_serve(args: argparse.Namespace, config: dict[str, Any]) -> int:
    import uvicorn

    from app.ussd_api import create_app

    uvicorn.run(create_app(config), host=args.host, port=int(args.port))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args.config)
    configure_logging(config)

    if args.command == "simulate":
        return cmd_simulate(args, config)
    if args.command in {"approve", "suspend", "profile"}:
        return cmd_admin(args, config)
    if args.command == "serve":
        return cmd_serve(args, config)

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
