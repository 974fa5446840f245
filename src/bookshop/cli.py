"""Command-line interface for bookshop."""

import argparse
import asyncio
import json
import sys
from decimal import Decimal, InvalidOperation

from . import __version__, config
from .errors import BookshopError, InvalidArgumentError
from .models import PaymentMethod, PaymentMethodType
from .payments import PaymentSimulator


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        config.configure_logging(args.log_level)

        print("Starting bookshop API server...")
        print(f"Demo data: {'on' if config.SEED_DEMO_DATA else 'off'}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "bookshop.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,  # The store lives in process memory
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _parse_amount(raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise InvalidArgumentError(f"Invalid amount: {raw}")


def cmd_simulate(args: argparse.Namespace) -> int:
    """Show what the payment simulator answers for an instrument and amount."""
    try:
        amount = _parse_amount(args.amount)
        if args.paypal:
            method = PaymentMethod(id=0, user_id=0, type=PaymentMethodType.PAYPAL,
                                   paypal_email=args.paypal)
        else:
            if not args.last4.isdigit() or len(args.last4) != 4:
                raise InvalidArgumentError("--last4 must be exactly four digits")
            method = PaymentMethod(id=0, user_id=0, type=PaymentMethodType.CREDIT_CARD,
                                   card_number_last4=args.last4)

        simulator = PaymentSimulator(latency=0)
        result = asyncio.run(simulator.process_payment(method, amount))

        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
        else:
            outcome = "APPROVED" if result.success else "DECLINED"
            print(f"{outcome}  {result.transaction_id}  {result.message}")
            if result.failure_reason:
                print(f"  reason: {result.failure_reason}")
        return 0 if result.success else 2

    except BookshopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="bookshop",
        description="In-memory bookstore backend with a simulated payment gateway.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind (default: 8000)")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    serve_parser.add_argument("--log-level", default=None, help="Log level (default: BOOKSHOP_LOG_LEVEL)")

    # simulate
    simulate_parser = subparsers.add_parser(
        "simulate", help="Run one payment through the simulator"
    )
    instrument = simulate_parser.add_mutually_exclusive_group()
    instrument.add_argument("--last4", default="0000", help="Card last four digits (default: 0000)")
    instrument.add_argument("--paypal", metavar="EMAIL", help="Pay with a PayPal account instead")
    simulate_parser.add_argument("--amount", required=True, help="Amount to charge, e.g. 19.99")
    simulate_parser.add_argument("--json", action="store_true", help="Output as JSON")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "serve": cmd_serve,
        "simulate": cmd_simulate,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
