#!/usr/bin/env python3
"""
Backup My Email

Signs in to Microsoft Graph with the device code flow and backs up the inbox
as MIME (.eml) files, 100 per numbered folder.
"""

import datetime
import locale
import sys

from exceptions import AuthError, ConfigError, MailBackupError
from graph_client import GraphMailClient
from graph_session import ConsoleChallengeHandler, GraphSession
from mail_config import MailBackupConfig
from mime_exporter import MimeExporter, format_duration


MENU = """
Please choose one of the following options:
0. Exit
1. Display access token
2. List my inbox
3. Save inbox messages as MIME
4. Show signed-in user"""


def use_user_locale() -> None:
    """Format dates in saved file names with the user's locale instead of C"""
    try:
        locale.setlocale(locale.LC_TIME, "")
    except locale.Error as e:
        print(f"⚠️ Warning: Could not apply system locale, using C locale dates: {e}")


def greet_user(client: GraphMailClient) -> None:
    user = client.get_current_user()
    print(f"Hello, {user.display_name}!")
    # Personal accounts leave mail empty
    print(f"Email: {user.mail or user.user_principal_name}")


def display_access_token(session: GraphSession) -> None:
    print(f"Access token: {session.get_token()}")


def list_inbox(client: GraphMailClient, limit: int = 25) -> None:
    messages = client.get_inbox_preview(limit=limit)
    if not messages:
        print("Inbox is empty")
        return

    for message in messages:
        received = message.received_datetime.strftime("%x %X") if message.received_datetime else "unknown"
        print(f"Message: {message.subject or '(no subject)'}")
        print(f"  From: {message.sender_email or 'NONE'}")
        print(f"  Status: {'Read' if message.is_read else 'Unread'}")
        print(f"  Received: {received}")


def export_inbox(client: GraphMailClient, config: MailBackupConfig) -> None:
    exporter = MimeExporter(client, output_dir=config.output_dir)
    stats = exporter.export_inbox()
    print(stats.get_summary())

    if stats.errors > 0 or stats.skipped_not_found > 0:
        print(f"⚠ Note: {stats.errors} errors and {stats.skipped_not_found} skipped messages")


def run_menu(session: GraphSession, client: GraphMailClient, config: MailBackupConfig) -> None:
    actions = {
        '1': lambda: display_access_token(session),
        '2': lambda: list_inbox(client),
        '3': lambda: export_inbox(client, config),
        '4': lambda: greet_user(client),
    }

    while True:
        print(MENU)
        choice = input("> ").strip()

        if choice == '0':
            print("Goodbye...")
            return

        action = actions.get(choice)
        if action is None:
            print("Invalid choice")
            continue

        try:
            action()
        except AuthError:
            raise
        except MailBackupError as e:
            print(f"❌ Error: {e}")


def main():
    """Main entry point for the Backup My Email script"""
    print("=" * 80)
    print("BACKUP MY EMAIL")
    print("=" * 80)

    script_start_time = datetime.datetime.now()
    use_user_locale()

    try:
        print("\n[1/3] Configuration Validation")
        print("-" * 40)
        config = MailBackupConfig()
        config.validate_environment()

        print("\n[2/3] OAuth2 Device Code Authentication")
        print("-" * 40)
        session = GraphSession()
        session.initialize(config, ConsoleChallengeHandler(open_browser=True))
        client = GraphMailClient(session)
        greet_user(client)

        print("\n[3/3] Mailbox Operations")
        print("-" * 40)
        run_menu(session, client, config)

        print(f"Total script execution time: {format_duration(datetime.datetime.now() - script_start_time)}")
        print("=" * 80)

    except ConfigError as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(1)
    except AuthError as e:
        print(f"❌ Authentication failed: {e}")
        print("Please ensure you have a valid Microsoft account and internet connection")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n" + "=" * 80)
        print("Script interrupted by user (Ctrl+C)")
        print("=" * 80)
        sys.exit(0)
    except Exception as e:
        print("\n" + "=" * 80)
        print("CRITICAL ERROR: Unexpected error occurred")
        print("-" * 40)
        print(f"Error: {e}")
        print("Please check your configuration and try again.")
        print("If the problem persists, check:")
        print("1. Your .env file contains valid CLIENT_ID, TENANT_ID and GRAPH_USER_SCOPES")
        print("2. Your internet connection is stable")
        print("3. Your app registration allows public client flows")
        print("=" * 80)
        sys.exit(1)


if __name__ == "__main__":
    main()
