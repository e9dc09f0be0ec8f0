import argparse
import json
import os
import sys
from datetime import datetime

from .logging_config import setup_logging
from .sms_api_caller import MessenteConfig, create_client, get_default_config_dir


def parse_send_time(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid ISO 8601 datetime: {value!r}")


def load_config(args: argparse.Namespace) -> MessenteConfig:
    config = MessenteConfig(args.config)
    if getattr(args, "insecure", False):
        config.secure = False
    return config


def cmd_send_sms(args: argparse.Namespace) -> int:
    """Send an SMS message"""
    try:
        config = load_config(args)
        recipients = args.to or ([config.to_number] if config.to_number else [])
        if not recipients:
            print("Error: no recipient given and no to_number configured", file=sys.stderr)
            return 1

        with create_client(config) as client:
            outcome = client.send_message(
                args.message,
                recipients,
                sender=args.sender or config.sender,
                time_to_send=args.at,
                report_url=args.report_url,
            )

        for result in outcome:
            if result.ok:
                print(f"{result.phone}: sent, message ID {result.code}")
            else:
                print(f"{result.phone}: failed: {result.error}", file=sys.stderr)

        if args.verbose:
            print(json.dumps({"message_ids": outcome.message_ids}, indent=2))

        return 0 if not outcome.failed else 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_report(args: argparse.Namespace) -> int:
    """Poll delivery reports for previously sent messages"""
    try:
        config = load_config(args)
        with create_client(config) as client:
            reports = client.get_report(args.ids)

        failed = 0
        for report in reports:
            if report.ok:
                print(f"{report.report}: {report.code}")
            else:
                failed += 1
                print(f"{report.report}: error: {report.error}", file=sys.stderr)
        return 0 if not failed else 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_balance(args: argparse.Namespace) -> int:
    """Print the account balance"""
    try:
        config = load_config(args)
        with create_client(config) as client:
            balance = client.get_account_balance()
        print(f"{balance:.2f} EUR")
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_prices(args: argparse.Namespace) -> int:
    """Print the price list, optionally for a single country"""
    try:
        config = load_config(args)
        with create_client(config) as client:
            if args.country:
                prices = client.get_prices_for_country(args.country, args.format)
            else:
                prices = client.get_prices(args.format)

        if isinstance(prices, list):
            for row in prices:
                print(",".join(row))
        else:
            print(json.dumps(prices, indent=2))
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_init(args: argparse.Namespace) -> int:
    """Create the config directory and write a config file with credentials"""
    config_dir = args.config_dir or get_default_config_dir()
    config_path = os.path.join(config_dir, "config.json")

    print(f"Initializing Messente client in: {config_dir}")

    try:
        os.makedirs(config_dir, exist_ok=True)
    except OSError as e:
        print(f"Failed to create config directory: {e}", file=sys.stderr)
        return 1

    if os.path.exists(config_path) and not args.force:
        print(f"Config file already exists: {config_path}")
        print("Use --force to overwrite existing files")
        return 1

    config_data = {
        "username": args.username,
        "password": args.password,
        "secure": not args.insecure,
        "sender": args.sender,
        "to_number": args.to_number,
    }
    # Remove None values
    config_data = {k: v for k, v in config_data.items() if v is not None}

    try:
        with open(config_path, 'w') as f:
            json.dump(config_data, f, indent=2)
        os.chmod(config_path, 0o600)
    except OSError as e:
        print(f"Failed to create config file: {e}", file=sys.stderr)
        return 1

    print(f"Created config file: {config_path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="messente-cli", description="Messente SMS gateway client utilities")
    p.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL env or WARNING)")
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_config_args(parser):
        parser.add_argument("--config", default=None, help="Config file path (default: MESSENTE_CONFIG or XDG config directory)")
        parser.add_argument("--insecure", action="store_true", help="Use plain HTTP instead of HTTPS")

    p_init = sub.add_parser("init", help="Write a config file with gateway credentials")
    p_init.add_argument("--config-dir", help="Config directory (default: XDG_CONFIG_HOME/messente or ~/.config/messente)")
    p_init.add_argument("--username", required=True, help="API username")
    p_init.add_argument("--password", required=True, help="API password")
    p_init.add_argument("--sender", help="Default sender ID")
    p_init.add_argument("--to-number", help="Default recipient phone number")
    p_init.add_argument("--insecure", action="store_true", help="Use plain HTTP instead of HTTPS")
    p_init.add_argument("--force", action="store_true", help="Overwrite existing files")
    p_init.set_defaults(func=cmd_init)

    p_send = sub.add_parser("send", help="Send an SMS message", description="Send an SMS message to one or more phone numbers.")
    p_send.add_argument("message", help="Message to send")
    p_send.add_argument("--to", action="append", help="Recipient phone number, repeatable (default: to_number from config)")
    p_send.add_argument("--from", dest="sender", default=None, help="Sender ID (overrides config)")
    p_send.add_argument("--at", type=parse_send_time, default=None, help="Scheduled send time, ISO 8601 (naive times are UTC)")
    p_send.add_argument("--report-url", default=None, help="URL for delivery report callbacks")
    p_send.add_argument("--verbose", "-v", action="store_true", help="Verbose output (default: False)")
    add_config_args(p_send)
    p_send.set_defaults(func=cmd_send_sms)

    p_report = sub.add_parser("report", help="Get delivery reports", description="Poll delivery reports for message IDs returned by send.")
    p_report.add_argument("ids", nargs="+", help="Message IDs")
    add_config_args(p_report)
    p_report.set_defaults(func=cmd_report)

    p_balance = sub.add_parser("balance", help="Show account balance")
    add_config_args(p_balance)
    p_balance.set_defaults(func=cmd_balance)

    p_prices = sub.add_parser("prices", help="Show prices")
    p_prices.add_argument("--country", default=None, help="ISO country code (default: full price list)")
    p_prices.add_argument("--format", default="json", choices=["json", "csv"], help="Response format (default: json)")
    add_config_args(p_prices)
    p_prices.set_defaults(func=cmd_prices)

    return p


def main(argv=None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(log_level=args.log_level)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
