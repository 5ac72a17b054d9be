"""
Command line entry point for sshvault.

Wires a :class:`~sshvault.config.Config` to a
:class:`~sshvault.host_store.HostStore` and exposes the store operations as
sub-commands.
"""

import argparse
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional, Sequence

from .command_builder import (
    alias_command,
    build_copy_id_command,
    build_sftp_command,
    build_shell_command,
    build_ssh_command,
)
from .clipboard import HostClipboard
from .config import TERMINAL_APPS, Config
from .host_store import HostStore
from .key_manager import KEY_TYPES, KeyManager
from .models import Host, RemoteTarget
from .platform_utils import ensure_private_dir, get_data_dir
from .ssh_config import sanitize_alias
from .storage import GroupFile, LocalConfigFile
from .termius_import import import_termius_links

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, config: Optional[Config] = None, log_dir: Optional[str] = None):
    """Set up logging configuration"""
    log_dir = log_dir or get_data_dir()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if config is not None and bool(config.get_setting('ssh.debug_enabled', False)):
        verbose = True
    level = logging.DEBUG if verbose else logging.INFO

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    try:
        ensure_private_dir(log_dir)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'sshvault.log'),
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except OSError as e:
        print(f"sshvault: file logging disabled: {e}", file=sys.stderr)

    # Console stays quiet unless asked for; command output goes to stdout
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logging.getLogger('paramiko').setLevel(logging.INFO if verbose else logging.WARNING)
    logging.getLogger('sshvault').setLevel(level)


def build_store(config: Config, config_path: Optional[str] = None) -> HostStore:
    target = LocalConfigFile(config_path or config.get_ssh_config_path())
    store = HostStore(target, GroupFile(config.get_groups_path()))
    store.load()
    return store


def _require_host(store: HostStore, alias: str) -> Host:
    host = store.find_host(alias)
    if host is None:
        raise LookupError(f"No host named '{alias}'")
    return host


def _require_group(store: HostStore, name: str):
    group = store.find_group(name)
    if group is None:
        raise LookupError(f"No group named '{name}'")
    return group


def _report(result, success_message: str) -> int:
    ok, error = result
    if not ok:
        print(f"error: {error}", file=sys.stderr)
        return 1
    print(success_message)
    return 0


def _parse_options(pairs: Sequence[str]):
    options = {}
    for pair in pairs or []:
        if '=' not in pair:
            raise ValueError(f"Option '{pair}' must look like KEY=VALUE")
        key, value = pair.split('=', 1)
        options[key.strip()] = value.strip()
    return options


# --- Host commands ---------------------------------------------------------

def cmd_list(args, config: Config, store: HostStore) -> int:
    def _line(host: Host) -> str:
        target = host.hostname or '-'
        if host.user:
            target = f"{host.user}@{target}"
        label = f" ({host.label})" if host.label else ''
        return f"  {host.alias}{label}  {target}"

    groups = [_require_group(store, args.group)] if args.group else store.groups
    for group in groups:
        print(f"[{group.name}]")
        for host in store.hosts_in_group(group):
            print(_line(host))
    if not args.group:
        ungrouped = store.ungrouped_hosts()
        if ungrouped and store.groups:
            print("[ungrouped]")
        for host in ungrouped:
            print(_line(host))
    return 0


def cmd_show(args, config: Config, store: HostStore) -> int:
    host = _require_host(store, args.alias)
    sys.stdout.write(store.export_config([host]))
    return 0


def cmd_add(args, config: Config, store: HostStore) -> int:
    host = Host(
        alias=args.alias,
        label=args.label or '',
        hostname=args.hostname or '',
        user=args.user or '',
        port=args.port,
        identity_file=args.identity_file or '',
        proxy_jump=args.proxy_jump or '',
        forward_agent=args.forward_agent,
        icon=args.icon or '',
        sftp_path=args.sftp_path or '',
        ssh_init_path=not args.no_ssh_init_path,
        extra_options=_parse_options(args.option),
    )
    if host.port is not None and not 1 <= host.port <= 65535:
        raise ValueError("Port must be a number between 1 and 65535.")
    if store.find_host(sanitize_alias(host.alias)) is not None:
        raise ValueError(f"Host '{host.alias}' already exists")
    return _report(store.add_host(host), f"Added {host.alias}")


def cmd_rm(args, config: Config, store: HostStore) -> int:
    host = _require_host(store, args.alias)
    return _report(store.delete_host(host), f"Removed {host.alias}")


def cmd_dup(args, config: Config, store: HostStore) -> int:
    host = _require_host(store, args.alias)
    duplicate = store.duplicate_host(host)
    if duplicate is None:
        print("error: the wildcard host cannot be duplicated", file=sys.stderr)
        return 1
    return _report((not store.dirty, store.last_error), f"Created {duplicate.alias}")


def cmd_export(args, config: Config, store: HostStore) -> int:
    hosts = [_require_host(store, alias) for alias in args.host] if args.host else None
    text = store.export_config(hosts)
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(text)
        print(f"Exported to {args.output}")
    else:
        sys.stdout.write(text)
    return 0


def cmd_import(args, config: Config, store: HostStore) -> int:
    with open(args.file, 'r', encoding='utf-8') as f:
        content = f.read()
    report = store.import_config(content, replace=args.replace)
    if not report.saved:
        print(f"error: {report.error}", file=sys.stderr)
        return 1
    print(f"Imported {report.count} hosts")
    if report.skipped:
        print(f"Skipped existing aliases: {', '.join(report.skipped)}")
    return 0


def cmd_command(args, config: Config, store: HostStore) -> int:
    host = _require_host(store, args.alias)
    if args.sftp:
        argv = build_sftp_command(host)
    elif args.copy_id:
        argv = build_copy_id_command(host, args.copy_id)
    elif args.expanded:
        argv = build_ssh_command(host)
    else:
        argv = alias_command(host)
    print(build_shell_command(argv))
    if args.verbose_terminal:
        print(f"terminal: {config.resolved_terminal(host.alias)}")
    return 0


# --- Groups ----------------------------------------------------------------

def cmd_group(args, config: Config, store: HostStore) -> int:
    action = args.group_action
    if action == 'list':
        for group in store.groups:
            print(f"{group.name}: {', '.join(group.host_ids) or '-'}")
        return 0
    if action == 'add':
        group = store.add_group(args.name)
        print(f"Created group {group.name}")
        return 0
    if action == 'move':
        store.move_host(_require_host(store, args.alias), _require_group(store, args.name))
        return 0
    if action == 'unassign':
        store.remove_host_from_groups(_require_host(store, args.alias))
        return 0

    group = _require_group(store, args.name)
    if action == 'rename':
        store.rename_group(group, args.new_name)
    elif action == 'rm':
        store.delete_group(group)
    elif action == 'up':
        store.move_group_up(group)
    elif action == 'down':
        store.move_group_down(group)
    return 0


# --- Keys and Termius --------------------------------------------------------

def cmd_keys(args, config: Config, store: HostStore) -> int:
    manager = KeyManager(args.ssh_dir) if args.ssh_dir else KeyManager()
    if args.generate:
        ok = manager.generate_key(args.generate, key_type=args.type, comment=args.comment or '')
        if not ok:
            print(f"error: could not generate key {args.generate}", file=sys.stderr)
            return 1
        print(f"Generated {args.generate}")
        return 0
    for key in manager.list_keys():
        print(f"{key.name}\t{key.key_type}\t{key.fingerprint}\t{key.comment}")
    return 0


def cmd_termius(args, config: Config, store: HostStore) -> int:
    with open(args.file, 'r', encoding='utf-8') as f:
        text = f.read()
    group = _require_group(store, args.group) if args.group else None
    imported = import_termius_links(store, text, group)
    print(f"Imported {len(imported)} hosts")
    return 0 if not store.dirty else 1


# --- Remotes ---------------------------------------------------------------

def _paste(clipboard: HostClipboard, destination: HostStore, label: str) -> int:
    pasted = clipboard.prepare_for_paste(destination.aliases())
    if not pasted:
        print("Nothing to paste")
        return 0
    ok, error = destination.add_hosts(pasted)
    if not ok:
        print(f"error: {error}", file=sys.stderr)
        return 1
    print(f"Pasted {len(pasted)} hosts into {label}: {', '.join(h.alias for h in pasted)}")
    return 0


def cmd_remote(args, config: Config, store: HostStore) -> int:
    from .remote import RemoteTargetRegistry, open_remote_store

    registry = RemoteTargetRegistry(config.get_remote_targets_path())
    action = args.remote_action
    if action == 'list':
        for target in registry.targets:
            print(f"{target.name}\t{target.host_alias}")
        return 0
    if action == 'add':
        host = _require_host(store, args.alias)
        target = RemoteTarget(name=args.name or host.display_name, host_alias=host.alias)
        if not registry.add_target(target):
            print(f"error: cannot add remote for '{host.alias}'", file=sys.stderr)
            return 1
        print(f"Added remote {target.name}")
        return 0

    target = registry.find(args.name)
    if target is None:
        raise LookupError(f"No remote named '{args.name}'")
    if action == 'rm':
        registry.remove_target(target)
        return 0
    if action == 'rename':
        registry.rename_target(target, args.new_name)
        return 0

    remote_store = open_remote_store(target, store, config)
    remote_store.load()
    clipboard = HostClipboard()

    if action == 'show':
        sys.stdout.write(remote_store.export_config())
        return 0
    if action == 'keys':
        for key in remote_store.target.list_keys():
            print(f"{key.name}\t{key.key_type}\t{key.fingerprint}\t{key.comment}")
        return 0
    if action == 'paste':
        clipboard.copy(_require_host(store, alias) for alias in args.aliases)
        return _paste(clipboard, remote_store, target.name)
    if action == 'pull':
        clipboard.copy(_require_host(remote_store, alias) for alias in args.aliases)
        return _paste(clipboard, store, "local config")
    if action == 'delete-host':
        host = _require_host(remote_store, args.alias)
        return _report(remote_store.delete_host(host), f"Removed {host.alias} from {target.name}")
    return 1


# --- Preferences -----------------------------------------------------------

def cmd_terminal(args, config: Config, store: HostStore) -> int:
    action = args.terminal_action
    if action == 'show':
        if args.alias:
            print(f"{args.alias}: {config.resolved_terminal(args.alias)}")
            custom = config.resolved_custom_path(args.alias)
        else:
            print(f"default: {config.get_setting('terminal.default')}")
            custom = config.get_setting('terminal.custom_path', '')
        if custom:
            print(f"custom path: {custom}")
        return 0
    if action == 'default':
        config.set_setting('terminal.default', args.terminal)
        if args.path is not None:
            config.set_setting('terminal.custom_path', args.path)
        return 0
    if action == 'set':
        config.set_terminal_override(args.alias, args.terminal, args.path)
        return 0
    if action == 'unset':
        config.remove_terminal_override(args.alias)
        return 0
    return 1


def cmd_settings(args, config: Config, store: HostStore) -> int:
    if args.settings_action == 'get':
        value = config.get_setting(args.key)
        if value is None:
            raise LookupError(f"No setting named '{args.key}'")
        print(json.dumps(value) if isinstance(value, (dict, list, bool)) else value)
        return 0
    config.reset_to_defaults()
    print("Settings reset to defaults")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='sshvault', description="Manage the OpenSSH client configuration")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose debug logging")
    parser.add_argument("--config", dest="ssh_config", help="SSH config file to edit (default: ~/.ssh/config)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="List hosts by group")
    p.add_argument("--group")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("show", help="Print one host stanza")
    p.add_argument("alias")
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("add", help="Add a host")
    p.add_argument("alias")
    p.add_argument("--hostname")
    p.add_argument("--user")
    p.add_argument("--port", type=int)
    p.add_argument("--identity-file")
    p.add_argument("--proxy-jump")
    p.add_argument("--forward-agent", action="store_true")
    p.add_argument("--label")
    p.add_argument("--icon")
    p.add_argument("--sftp-path")
    p.add_argument("--no-ssh-init-path", action="store_true")
    p.add_argument("--option", "-o", action="append", metavar="KEY=VALUE")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("rm", help="Delete a host")
    p.add_argument("alias")
    p.set_defaults(func=cmd_rm)

    p = sub.add_parser("dup", help="Duplicate a host")
    p.add_argument("alias")
    p.set_defaults(func=cmd_dup)

    p = sub.add_parser("export", help="Print config text for all or some hosts")
    p.add_argument("--host", action="append", metavar="ALIAS")
    p.add_argument("--output", "-O")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("import", help="Import hosts from a config file")
    p.add_argument("file")
    p.add_argument("--replace", action="store_true", help="Replace all hosts instead of merging")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("command", help="Print the command used to connect to a host")
    p.add_argument("alias")
    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--sftp", action="store_true")
    mode.add_argument("--copy-id", metavar="KEY")
    mode.add_argument("--expanded", action="store_true", help="Spell out every option instead of using the alias")
    p.add_argument("--terminal", dest="verbose_terminal", action="store_true", help="Also print the terminal to use")
    p.set_defaults(func=cmd_command)

    p = sub.add_parser("group", help="Manage groups")
    gsub = p.add_subparsers(dest="group_action", required=True)
    gsub.add_parser("list")
    for name in ("add", "rm", "up", "down"):
        gp = gsub.add_parser(name)
        gp.add_argument("name")
    gp = gsub.add_parser("rename")
    gp.add_argument("name")
    gp.add_argument("new_name")
    gp = gsub.add_parser("move")
    gp.add_argument("alias")
    gp.add_argument("name")
    gp = gsub.add_parser("unassign")
    gp.add_argument("alias")
    p.set_defaults(func=cmd_group)

    p = sub.add_parser("keys", help="List or generate SSH keys")
    p.add_argument("--ssh-dir")
    p.add_argument("--generate", metavar="NAME")
    p.add_argument("--type", default="ed25519", choices=KEY_TYPES)
    p.add_argument("--comment")
    p.set_defaults(func=cmd_keys)

    p = sub.add_parser("termius", help="Import Termius share links from a file")
    p.add_argument("file")
    p.add_argument("--group")
    p.set_defaults(func=cmd_termius)

    p = sub.add_parser("remote", help="Manage remote machines")
    rsub = p.add_subparsers(dest="remote_action", required=True)
    rsub.add_parser("list")
    rp = rsub.add_parser("add")
    rp.add_argument("alias")
    rp.add_argument("--name")
    for name in ("rm", "show", "keys"):
        rp = rsub.add_parser(name)
        rp.add_argument("name")
    rp = rsub.add_parser("rename")
    rp.add_argument("name")
    rp.add_argument("new_name")
    rp = rsub.add_parser("paste", help="Copy local hosts into the remote config")
    rp.add_argument("name")
    rp.add_argument("aliases", nargs="+", metavar="ALIAS")
    rp = rsub.add_parser("pull", help="Copy remote hosts into the local config")
    rp.add_argument("name")
    rp.add_argument("aliases", nargs="+", metavar="ALIAS")
    rp = rsub.add_parser("delete-host", help="Delete a host from the remote config")
    rp.add_argument("name")
    rp.add_argument("alias")
    p.set_defaults(func=cmd_remote)

    p = sub.add_parser("terminal", help="Terminal preferences")
    tsub = p.add_subparsers(dest="terminal_action", required=True)
    tp = tsub.add_parser("show")
    tp.add_argument("alias", nargs="?")
    tp = tsub.add_parser("default")
    tp.add_argument("terminal", choices=TERMINAL_APPS)
    tp.add_argument("--path")
    tp = tsub.add_parser("set", help="Use a specific terminal for one host")
    tp.add_argument("alias")
    tp.add_argument("terminal", choices=TERMINAL_APPS)
    tp.add_argument("--path")
    tp = tsub.add_parser("unset")
    tp.add_argument("alias")
    p.set_defaults(func=cmd_terminal)

    p = sub.add_parser("settings", help="Inspect or reset preferences")
    ssub = p.add_subparsers(dest="settings_action", required=True)
    sp = ssub.add_parser("get")
    sp.add_argument("key")
    ssub.add_parser("reset")
    p.set_defaults(func=cmd_settings)

    return parser


def _log_setting_change(key, value):
    logger.info(f"Setting {key} changed to {value!r}")


def main(argv: Optional[List[str]] = None, config: Optional[Config] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = config or Config()
    setup_logging(verbose=args.verbose, config=config)

    listener = config.connect(_log_setting_change)
    try:
        store = build_store(config, args.ssh_config)
        return args.func(args, config, store)
    except (LookupError, ValueError, OSError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        config.disconnect(listener)


if __name__ == '__main__':
    sys.exit(main())
