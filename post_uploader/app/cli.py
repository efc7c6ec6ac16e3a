"""Command-line interface for drafting and uploading posts."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Callable, Sequence

from ..services.content_rewriter import placeholder_markup
from ..services.models import Blog, Post, PostStatus
from ..services.notices import ConsoleNoticeSink
from ..services.post_coordinator import SaveResult
from ..settings import load_config
from ..utils.logging import configure_logging, get_logger
from .container import Container, build_container

LOGGER = get_logger(__name__)


class ConsolePasswordPrompt:
    """Tells the user the stored application password was rejected."""

    def __init__(self, password_env: str) -> None:
        self._password_env = password_env

    def prompt_for_password(self, blog: Blog) -> None:
        print(
            f"{blog.url} rejected the credentials; update {self._password_env} and retry.",
            file=sys.stderr,
        )


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    handler: Callable[[argparse.Namespace, Container], int] | None = getattr(args, "handler", None)
    if handler is None:
        parser.print_help(sys.stderr)
        return 1

    config = load_config(args.config)
    configure_logging(
        level=config.logging.level,
        structured=config.logging.structured and not args.log_plain,
        log_file=config.paths.log_file,
    )
    container = build_container(
        config,
        notices=ConsoleNoticeSink(),
        delegate=ConsolePasswordPrompt(config.site.password_env),
    )
    LOGGER.info("Running command", extra={"event": "cli.command", "command": args.command})
    try:
        return handler(args, container)
    finally:
        container.close()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="post-uploader", description="Upload posts to WordPress")
    parser.add_argument("--config", help="Path to configuration file", default=None)
    parser.add_argument(
        "--log-plain",
        action="store_true",
        help="Use plain-text logs instead of JSON",
    )
    subparsers = parser.add_subparsers(dest="command")

    new_parser = subparsers.add_parser("new", help="Create a local post")
    new_parser.add_argument("--title", required=True)
    content = new_parser.add_mutually_exclusive_group()
    content.add_argument("--content", default="", help="Post body markup")
    content.add_argument("--content-file", type=Path, help="Read the post body from a file")
    new_parser.add_argument("--page", action="store_true", help="Create a page instead of a post")
    new_parser.add_argument(
        "--status",
        choices=[status.value for status in PostStatus if status is not PostStatus.TRASH],
        default=PostStatus.DRAFT.value,
    )
    new_parser.set_defaults(handler=_handle_new)

    attach_parser = subparsers.add_parser("attach", help="Attach media files to a post")
    attach_parser.add_argument("post_id")
    attach_parser.add_argument("files", nargs="+", type=Path)
    attach_parser.add_argument(
        "--insert",
        action="store_true",
        help="Append a block referencing each file to the post body",
    )
    attach_parser.set_defaults(handler=_handle_attach)

    save_parser = subparsers.add_parser("save", help="Upload media and the post")
    save_parser.add_argument("post_id")
    save_parser.add_argument(
        "--draft",
        action="store_true",
        help="Create the post as a draft if it does not exist remotely yet",
    )
    save_parser.set_defaults(handler=_handle_save)

    for name, help_text, handler in (
        ("publish", "Publish the post", _handle_publish),
        ("draft", "Move the post back to draft and upload it", _handle_draft),
        ("autosave", "Store an autosave revision", _handle_autosave),
        ("cancel", "Stop automatic uploads of the post", _handle_cancel),
        ("delete", "Trash the post, or delete it if already trashed", _handle_delete),
    ):
        command_parser = subparsers.add_parser(name, help=help_text)
        command_parser.add_argument("post_id")
        command_parser.set_defaults(handler=handler)

    resume_parser = subparsers.add_parser("resume", help="Retry failed uploads")
    resume_parser.set_defaults(handler=_handle_resume)

    refresh_parser = subparsers.add_parser(
        "refresh", help="Mark uploads interrupted by a previous run as failed"
    )
    refresh_parser.set_defaults(handler=_handle_refresh)

    list_parser = subparsers.add_parser("list", help="Show stored posts")
    list_parser.add_argument("--failed", action="store_true", help="Only show failed posts")
    list_parser.add_argument(
        "--format",
        choices=("json", "table"),
        default="table",
        help="Output format",
    )
    list_parser.set_defaults(handler=_handle_list)

    return parser


# Handlers ---------------------------------------------------------------


def _handle_new(args: argparse.Namespace, container: Container) -> int:
    body = args.content_file.read_text(encoding="utf-8") if args.content_file else args.content
    post = Post(
        blog=container.blog,
        title=args.title,
        content=body,
        post_type="page" if args.page else "post",
        status=PostStatus(args.status),
    )
    container.store.add(post)
    LOGGER.info(
        "Created local post",
        extra={"event": "cli.command", "command": "new", "post_id": post.post_id},
    )
    print(post.post_id)
    return 0


def _handle_attach(args: argparse.Namespace, container: Container) -> int:
    post = _require_post(container, args.post_id)
    for path in args.files:
        try:
            media = container.coordinator.add_media([path], post)[0]
        except FileNotFoundError as exc:
            LOGGER.error(str(exc), extra={"event": "cli.error", "command": "attach"})
            raise SystemExit(2) from exc
        if args.insert:
            markup = placeholder_markup(media)
            container.store.perform(
                post, lambda target: setattr(target, "content", _append_block(target.content, markup))
            )
        print(f"{media.filename}\tupload_id={media.upload_id}\tgutenberg_id={media.gutenberg_upload_id}")
    return 0


def _handle_save(args: argparse.Namespace, container: Container) -> int:
    post = _require_post(container, args.post_id)
    results: list[SaveResult] = []
    container.coordinator.save(
        post, force_draft_if_creating=args.draft, completion=results.append
    )
    return _finish(container, post, results)


def _handle_publish(args: argparse.Namespace, container: Container) -> int:
    post = _require_post(container, args.post_id)
    results: list[SaveResult] = []
    container.coordinator.publish(post, completion=results.append)
    return _finish(container, post, results)


def _handle_draft(args: argparse.Namespace, container: Container) -> int:
    post = _require_post(container, args.post_id)
    results: list[SaveResult] = []
    container.coordinator.move_to_draft(post, completion=results.append)
    return _finish(container, post, results)


def _handle_autosave(args: argparse.Namespace, container: Container) -> int:
    post = _require_post(container, args.post_id)
    container.coordinator.auto_save(post)
    container.close()
    _print_posts([post], "table")
    return 1 if post.is_failed else 0


def _handle_cancel(args: argparse.Namespace, container: Container) -> int:
    post = _require_post(container, args.post_id)
    if not container.interactor.can_cancel_auto_upload(post):
        LOGGER.warning(
            "Post has no automatic upload to cancel",
            extra={"event": "cli.command", "command": "cancel", "post_id": post.post_id},
        )
    container.coordinator.cancel_auto_upload_of(post)
    return 0


def _handle_delete(args: argparse.Namespace, container: Container) -> int:
    post = _require_post(container, args.post_id)
    return 0 if container.coordinator.delete(post) else 1


def _handle_resume(args: argparse.Namespace, container: Container) -> int:
    container.coordinator.refresh_post_status()
    counts = container.scanner.resume()
    container.close()
    print(json.dumps({action.value: count for action, count in counts.items()}, indent=2))
    return 0


def _handle_refresh(args: argparse.Namespace, container: Container) -> int:
    repaired = container.coordinator.refresh_post_status()
    for post in repaired:
        print(post.post_id)
    return 0


def _handle_list(args: argparse.Namespace, container: Container) -> int:
    posts = container.store.failed() if args.failed else container.store.all()
    _print_posts(posts, args.format)
    return 0


# Helpers ----------------------------------------------------------------


def _require_post(container: Container, post_id: str) -> Post:
    post = container.store.get(post_id)
    if post is None:
        LOGGER.error(
            "Unknown post",
            extra={"event": "cli.error", "post_id": post_id},
        )
        raise SystemExit(2)
    return post


def _finish(container: Container, post: Post, results: list[SaveResult]) -> int:
    container.close()
    if not results:
        LOGGER.warning(
            "Save finished without a result",
            extra={"event": "cli.command", "post_id": post.post_id},
        )
        return 1
    result = results[-1]
    _print_posts([result.post], "table")
    return 0 if result.succeeded else 1


def _append_block(content: str, markup: str) -> str:
    if not content.strip():
        return markup
    return f"{content.rstrip()}\n\n{markup}"


def _post_row(post: Post) -> dict[str, object]:
    return {
        "post_id": post.post_id,
        "type": post.post_type,
        "title": post.title,
        "status": post.status.value,
        "remote_status": post.remote_status.value,
        "remote_id": post.remote_id,
        "attempts": post.auto_upload_attempts_count,
        "link": post.link,
    }


def _print_posts(posts: Sequence[Post], output_format: str) -> None:
    rows = [_post_row(post) for post in posts]
    if output_format == "json":
        print(json.dumps(rows, ensure_ascii=False, indent=2))
        return
    columns = ("post_id", "status", "remote_status", "remote_id", "title")
    widths = {
        column: max([len(column), *(len(str(row[column] or "")) for row in rows)])
        for column in columns
    }
    print("  ".join(column.ljust(widths[column]) for column in columns))
    for row in rows:
        print("  ".join(str(row[column] or "").ljust(widths[column]) for column in columns))


__all__ = ["main"]
