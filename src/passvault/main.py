#!/usr/bin/env python3
"""passvault - command line front end for the credential vault.

This is the only module that prompts, prints, touches the clipboard or
exits. Everything below it raises typed VaultError subclasses.
"""

import argparse
import getpass
import logging
import os
import subprocess
import sys
from importlib.metadata import PackageNotFoundError, version

from .config import load_config
from .crypto import wipe
from .errors import AuthenticationFailure, VaultError
from .manager import VaultManager, resolve_credential
from .storage import STORES, create_store


def get_password(args_password=None, prompt="Enter master password: "):
    """Get the master passphrase as a bytearray the caller wipes after use.

    Checks --password, then the PASSVAULT_PASSWORD environment variable, and
    falls back to an interactive getpass prompt.

    Security note: --password and PASSVAULT_PASSWORD may be visible in process
    lists or shell history. Only use them in isolated environments.
    """
    if args_password:
        return bytearray(args_password.encode('utf-8'))
    env_password = os.environ.get('PASSVAULT_PASSWORD')
    if env_password:
        return bytearray(env_password.encode('utf-8'))
    return bytearray(getpass.getpass(prompt).encode('utf-8'))


def get_manager(args):
    """Build the manager for the configured store, creating the store if needed."""
    config = load_config(args.vault, args.storage, args.config)
    store = create_store(config.storage, config.vault_path)
    store.init()
    return VaultManager(store, password_length=config.password_length)


def copy_to_clipboard(text):
    """Copy text to clipboard using appropriate tool."""
    # Detect environment and choose tool
    if os.path.exists("/proc/version"):
        with open("/proc/version") as f:
            kernel = f.read().lower()
            if "microsoft" in kernel or "wsl" in kernel:
                cmd = ["clip.exe"]
            elif os.environ.get("WAYLAND_DISPLAY"):
                cmd = ["wl-copy"]
            else:
                cmd = ["xclip", "-selection", "clipboard"]
    elif sys.platform == "darwin":
        cmd = ["pbcopy"]
    else:
        print(f"Password: {text}")
        print("(No clipboard tool available - printing to stdout)", file=sys.stderr)
        return False

    try:
        proc = subprocess.run(cmd, input=text.encode('utf-8'), capture_output=True)
    except FileNotFoundError:
        print(f"Password: {text}")
        print("(Clipboard tool not found - printing to stdout)", file=sys.stderr)
        return False

    if proc.returncode != 0:
        print(f"Password: {text}")
        print("(Clipboard failed - printing to stdout)", file=sys.stderr)
        return False
    return True


def show_or_copy(password, show, name, username):
    if show:
        print(password)
    elif copy_to_clipboard(password):
        print(f"Copied password for {username} at {name} to clipboard")


def cmd_add(args):
    """Generate and store a password for a name/username pair."""
    manager = get_manager(args)

    # existing pairs are a no-op, so do not ask for the passphrase
    if args.name in manager.list_names() and manager.get_item(args.name).has_username(args.username):
        print(f"{args.username} at {args.name} already exists")
        return

    passphrase = get_password(args.password)
    try:
        password = manager.get_or_create_item(args.name, args.username, passphrase)
    finally:
        wipe(passphrase)

    if password is None:
        print(f"{args.username} at {args.name} already exists")
        return

    show_or_copy(password, args.show, args.name, args.username)


def cmd_get(args):
    """Decrypt and show (or copy) a stored password."""
    manager = get_manager(args)

    if not manager.list_names():
        print("No items stored yet")
        return

    item = manager.get_item(args.name)
    credential = resolve_credential(item, args.username)

    passphrase = get_password(args.password)
    try:
        password = manager.get_password(item.name, credential.username, passphrase)
    finally:
        wipe(passphrase)

    show_or_copy(password, args.show, item.name, credential.username)


def cmd_list(args):
    """List item names, or the usernames of one item."""
    manager = get_manager(args)

    if args.name:
        item = manager.get_item(args.name)
        print(item.name)
        for username in item.usernames():
            print(f"  {username}")
        return

    names = manager.list_names()
    if not names:
        print("No items stored yet")
        return
    for name in names:
        print(name)


def cmd_edit(args):
    """Rename the username of a credential."""
    manager = get_manager(args)
    item = manager.get_item(args.name)
    old_username = resolve_credential(item, args.username).username

    new_username = args.new_username
    if new_username is None:
        new_username = input(f"Please enter a new username ({old_username}): ").strip()
    if not new_username:
        new_username = old_username

    manager.rename_username(item.name, old_username, new_username)
    print("Saved.")


def cmd_delete(args):
    """Delete a credential, and its item when it was the last one."""
    manager = get_manager(args)
    item_removed = manager.delete_credential(args.name, args.username)
    if item_removed:
        print(f"Deleted {args.name}.")
    else:
        print("Deleted.")


def main(argv=None):
    try:
        pkg_version = version('passvault')
    except PackageNotFoundError:
        pkg_version = "unknown"

    parser = argparse.ArgumentParser(
        prog='passvault',
        description="passvault - local credential vault"
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f"%(prog)s {pkg_version}"
    )
    parser.add_argument('--vault', help='Path to vault file (default: ~/.passvault/storage.json)')
    parser.add_argument('--storage', choices=sorted(STORES), help='Storage backend')
    parser.add_argument('--config', help='Path to config file (default: ~/.passvault/config.json)')
    parser.add_argument('--password', help='Master password (prompted when omitted)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # add
    add_parser = subparsers.add_parser('add', help='Generate and store a password')
    add_parser.add_argument('name', help='Item name, e.g. a site')
    add_parser.add_argument('username', help='Username/login')
    add_parser.add_argument('--show', action='store_true', help='Print to stdout instead of clipboard')

    # get
    get_parser = subparsers.add_parser('get', help='Retrieve a password')
    get_parser.add_argument('name', help='Item name')
    get_parser.add_argument('username', nargs='?', help='Username (needed when the item has several)')
    get_parser.add_argument('--show', action='store_true', help='Print to stdout instead of clipboard')

    # list
    list_parser = subparsers.add_parser('list', help='List items')
    list_parser.add_argument('name', nargs='?', help='Show the usernames of one item')

    # edit
    edit_parser = subparsers.add_parser('edit', help='Rename a username')
    edit_parser.add_argument('name', help='Item name')
    edit_parser.add_argument('username', nargs='?', help='Current username')
    edit_parser.add_argument('--new-username', help='New username (prompted when omitted)')

    # delete
    delete_parser = subparsers.add_parser('delete', help='Delete a credential')
    delete_parser.add_argument('name', help='Item name')
    delete_parser.add_argument('username', nargs='?', help='Username (needed when the item has several)')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    commands = {
        'add': cmd_add,
        'get': cmd_get,
        'list': cmd_list,
        'edit': cmd_edit,
        'delete': cmd_delete,
    }

    try:
        commands[args.command](args)
    except AuthenticationFailure:
        print("Invalid password", file=sys.stderr)
        sys.exit(1)
    except VaultError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
