"""
memhdfs CLI：保存一次 WebHDFS 地址与用户名，之后所有命令复用；replay 在内存存储上回放操作脚本。
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Any, Optional

import httpx
import typer

from memhdfs import MemoryStorage, WebHDFSClient, status_is_dir, status_length, status_modified, status_owner
from memhdfs.cli_config import DEFAULT_USER, clear_config, load_config, save_config
from memhdfs.errors import WebHDFSRemoteError
from memhdfs.models import FileStatus
from memhdfs.transport import CompletionRecorder, ResponseCollector

app = typer.Typer(
    name="memhdfs",
    help="WebHDFS CLI. Save the endpoint once; replay scripts against an in-memory store.",
)

# 可选参数：覆盖或补充 base_url（未保存配置时必填）
_base_url_option: type = Annotated[
    Optional[str],
    typer.Option("--base-url", "-b", help="Override saved base URL (or required if not logged in)"),
]


@app.callback()
def _main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging to stderr")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _get_client(base_url: str | None) -> WebHDFSClient | None:
    cfg = load_config()
    url = base_url or (cfg and cfg.get("base_url"))
    if not url:
        return None
    user = (cfg.get("user") if cfg else None) or DEFAULT_USER
    return WebHDFSClient(base_url=url, user=user, timeout=30.0)


def _require_client(base_url: str | None) -> WebHDFSClient:
    client = _get_client(base_url)
    if client is None:
        typer.echo("error: no saved endpoint. run 'memhdfs login' or pass --base-url", err=True)
        raise typer.Exit(1)
    return client


def _run(base_url: str | None, action: str, fn: Any, *args: Any, **kwargs: Any) -> Any:
    """执行客户端调用；远端错误统一输出 error: 并以 1 退出。"""
    client = _require_client(base_url)
    try:
        return fn(client, *args, **kwargs)
    except (WebHDFSRemoteError, httpx.HTTPError, OSError) as e:
        typer.echo(f"error: {action}: {e}", err=True)
        raise typer.Exit(1)
    finally:
        client.close()


def _format_status(status: FileStatus) -> str:
    kind = "d" if status_is_dir(status) else "-"
    size = "-" if status_is_dir(status) else str(status_length(status))
    return (
        f"{kind}{status.get('permission', '')}  {status_owner(status)}  {size}  "
        f"{status_modified(status) or '-'}  {status.get('pathSuffix', '')}"
    )


# ------------------------- login / logout / info -------------------------


@app.command("login", help="Save WebHDFS endpoint and user to local config")
def login(
    base_url: Annotated[Optional[str], typer.Option("--base-url", "-b", help="WebHDFS base URL")] = None,
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="user.name sent with every request")] = None,
) -> None:
    base_url = base_url or input("Base URL (e.g. http://127.0.0.1:50070): ").strip()
    if not base_url:
        typer.echo("error: base URL required", err=True)
        raise typer.Exit(1)
    user = user or input(f"User [{DEFAULT_USER}]: ").strip() or None
    save_config(base_url, user)
    typer.echo("Saved.")


@app.command("logout", help="Clear saved endpoint")
def logout() -> None:
    if clear_config():
        typer.echo("Cleared.")
    else:
        typer.echo("No saved endpoint.")


@app.command("info", help="Show saved base_url and user")
def info_cmd() -> None:
    cfg = load_config()
    if not cfg:
        typer.echo("Not logged in. Run 'memhdfs login' or pass --base-url for commands.")
        return
    typer.echo(f"base_url: {cfg.get('base_url')}")
    typer.echo(f"user: {cfg.get('user') or DEFAULT_USER}")


# ------------------------- list / stat / cat -------------------------


def _cmd_list_impl(path: str, base_url: str | None) -> None:
    statuses = _run(base_url, "liststatus", WebHDFSClient.list_status, path)
    for status in sorted(statuses, key=lambda s: s.get("pathSuffix", "")):
        typer.echo(_format_status(status))


@app.command("list", help="List directory")
def list_cmd(
    path: Annotated[str, typer.Argument(help="Directory path (default: /)")] = "/",
    base_url: _base_url_option = None,
) -> None:
    _cmd_list_impl(path, base_url)


@app.command("ls", help="Alias for list")
def ls_cmd(
    path: Annotated[str, typer.Argument(help="Directory path (default: /)")] = "/",
    base_url: _base_url_option = None,
) -> None:
    _cmd_list_impl(path, base_url)


@app.command("stat", help="Print FileStatus (JSON)")
def stat_cmd(
    path: Annotated[str, typer.Argument(help="Remote path")],
    base_url: _base_url_option = None,
) -> None:
    status = _run(base_url, "getfilestatus", WebHDFSClient.get_file_status, path)
    typer.echo(json.dumps(status, ensure_ascii=False, indent=2))


@app.command("cat", help="Print file content to stdout")
def cat_cmd(
    path: Annotated[str, typer.Argument(help="Remote file path")],
    base_url: _base_url_option = None,
) -> None:
    data = _run(base_url, "open", WebHDFSClient.read_file, path)
    typer.echo(data.decode("utf-8", errors="replace"), nl=False)


# ------------------------- put -------------------------


@app.command("put", help="Upload a local file (create, or append with --append)")
def put_cmd(
    local: Annotated[Path, typer.Argument(help="Local file path")],
    remote: Annotated[str, typer.Argument(help="Remote file path")],
    append: Annotated[bool, typer.Option("--append", "-a", help="Append instead of create")] = False,
    overwrite: Annotated[bool, typer.Option("--overwrite/--no-overwrite", help="Overwrite an existing file")] = True,
    base_url: _base_url_option = None,
) -> None:
    if not local.is_file():
        typer.echo(f"error: not a file: {local}", err=True)
        raise typer.Exit(1)
    with local.open("rb") as f:
        if append:
            _run(base_url, "append", WebHDFSClient.append_file, remote, f)
        else:
            _run(base_url, "create", WebHDFSClient.write_file, remote, f, overwrite=overwrite)
    typer.echo("Appended." if append else "Uploaded.")


# ------------------------- mkdir / mv / ln / rm -------------------------


@app.command("mkdir", help="Create a directory")
def mkdir_cmd(
    path: Annotated[str, typer.Argument(help="Remote directory path")],
    base_url: _base_url_option = None,
) -> None:
    _run(base_url, "mkdirs", WebHDFSClient.mkdir, path)
    typer.echo("Created.")


@app.command("mv", help="Rename a path")
def mv_cmd(
    src: Annotated[str, typer.Argument(help="Source path")],
    dst: Annotated[str, typer.Argument(help="Destination path (must not exist)")],
    base_url: _base_url_option = None,
) -> None:
    _run(base_url, "rename", WebHDFSClient.rename, src, dst)
    typer.echo("Renamed.")


@app.command("ln", help="Create an alias of an existing path")
def ln_cmd(
    target: Annotated[str, typer.Argument(help="Existing path")],
    link: Annotated[str, typer.Argument(help="New alias path (must not exist)")],
    base_url: _base_url_option = None,
) -> None:
    _run(base_url, "createsymlink", WebHDFSClient.create_symlink, target, link)
    typer.echo("Linked.")


@app.command("rm", help="Delete a path")
def rm_cmd(
    path: Annotated[str, typer.Argument(help="Remote path")],
    recursive: Annotated[bool, typer.Option("--recursive", "-r", help="Delete the entries under a directory")] = False,
    base_url: _base_url_option = None,
) -> None:
    _run(base_url, "delete", WebHDFSClient.delete, path, recursive=recursive)
    typer.echo("Deleted.")


# ------------------------- chmod / chown -------------------------


@app.command("chmod", help="Set permission")
def chmod_cmd(
    permission: Annotated[str, typer.Argument(help="Octal permission, e.g. 755")],
    path: Annotated[str, typer.Argument(help="Remote path")],
    base_url: _base_url_option = None,
) -> None:
    _run(base_url, "setpermission", WebHDFSClient.set_permission, path, permission)
    typer.echo("OK.")


@app.command("chown", help="Set owner and group (OWNER[:GROUP])")
def chown_cmd(
    owner_group: Annotated[str, typer.Argument(help="OWNER or OWNER:GROUP")],
    path: Annotated[str, typer.Argument(help="Remote path")],
    base_url: _base_url_option = None,
) -> None:
    owner, _, group = owner_group.partition(":")
    _run(base_url, "setowner", WebHDFSClient.set_owner, path, owner or None, group or None)
    typer.echo("OK.")


# ------------------------- replay -------------------------


def _replay_line(storage: MemoryStorage, record: dict[str, Any], user: str) -> tuple[BaseException | None, bytes]:
    """在 storage 上执行一条脚本记录，返回 (错误, 响应体)。"""
    params = dict(record.get("params") or {})
    params.setdefault("user.name", user)
    data = record.get("data")
    payload = [data] if data else None
    sink = ResponseCollector()
    completion = CompletionRecorder()
    storage(None, record["path"], record["op"], params, payload, sink, completion)
    return completion.error, sink.body


@app.command("replay", help="Run a JSON-lines operation script against a fresh in-memory store")
def replay_cmd(
    script: Annotated[Path, typer.Argument(help='File with one {"op", "path", "params", "data"} object per line')],
    user: Annotated[str, typer.Option("--user", "-u", help="Default user.name")] = DEFAULT_USER,
    strict: Annotated[bool, typer.Option("--strict", help="Exit 1 if any operation failed")] = False,
) -> None:
    if not script.is_file():
        typer.echo(f"error: not found: {script}", err=True)
        raise typer.Exit(1)
    storage = MemoryStorage()
    failures = 0
    for lineno, line in enumerate(script.read_text(encoding="utf-8").splitlines(), start=1):
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        try:
            record = json.loads(line)
            label = f"{str(record['op']).upper()} {record['path']}"
        except (ValueError, KeyError, TypeError) as e:
            typer.echo(f"error: line {lineno}: invalid record: {e}", err=True)
            raise typer.Exit(1)
        error, body = _replay_line(storage, record, user)
        if error is not None:
            failures += 1
            typer.echo(f"{lineno}: {label} -> error: {error}")
        elif body:
            typer.echo(f"{lineno}: {label} -> {body.decode('utf-8', errors='replace')}")
        else:
            typer.echo(f"{lineno}: {label} -> ok")
    typer.echo(f"{len(storage.store)} path(s) in store, {failures} failure(s).")
    if strict and failures:
        raise typer.Exit(1)


# ------------------------- main -------------------------


def main() -> None:
    app()


if __name__ == "__main__":
    main()
