"""Command line entry point.

Results are printed to stdout as JSON; diagnostics go to stderr.
"""

import asyncio
import json
import sys
from typing import Any, Coroutine

import click
from dotenv import load_dotenv

from mailpilot import __version__
from mailpilot.cdp.session import connect, disconnect
from mailpilot.cdp.targets import list_targets, select_primary_target
from mailpilot.compose.service import ComposeAutomation, compose_draft
from mailpilot.compose.views import REPLY_COMMANDS, TimeoutExhausted, text_to_html
from mailpilot.config import CONFIG
from mailpilot.exceptions import MailpilotError
from mailpilot.logging_config import setup_logging


def _print(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _fail(message: str) -> int:
    click.echo(message, err=True)
    return 1


def _run(coro: Coroutine[Any, Any, int]) -> None:
    try:
        code = asyncio.run(coro)
    except MailpilotError as e:
        code = _fail(f"Error: {e}")
    sys.exit(code)


@click.group()
@click.version_option(version=__version__, prog_name="mailpilot")
@click.option("--port", type=int, default=None, help="DevTools port of the mail client")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Overrides MAILPILOT_LOGGING_LEVEL",
)
@click.pass_context
def main(ctx: click.Context, port: int | None, log_level: str | None):
    """Drive the mail client's compose window over the Chrome DevTools Protocol."""
    load_dotenv()
    setup_logging(log_level)
    ctx.obj = CONFIG.host_endpoint(port)


@main.command()
@click.pass_obj
def status(endpoint: str):
    """Check whether the mail client is attached."""

    async def run() -> int:
        target = select_primary_target(await list_targets(endpoint), CONFIG.match_rule())
        _print({"attached": target is not None, "target": target.model_dump() if target else None})
        return 0 if target else 1

    _run(run())


def _draft_options(fn):
    fn = click.option("--body", default="", help="Plain text body")(fn)
    fn = click.option("--subject", default="")(fn)
    fn = click.option("--bcc", multiple=True)(fn)
    fn = click.option("--cc", multiple=True)(fn)
    fn = click.option("--to", multiple=True, help="Recipient (repeatable)")(fn)
    return fn


async def _compose(endpoint: str, fields: dict[str, Any], save: bool) -> int:
    session = await connect(endpoint, attach_visible=True)
    if session is None:
        return _fail(f"Mail client not attached at {endpoint}")
    try:
        result = await compose_draft(
            ComposeAutomation.for_session(session),
            to=fields["to"],
            cc=fields["cc"],
            bcc=fields["bcc"],
            subject=fields["subject"],
            body_html=text_to_html(fields["body"]) if fields["body"] else "",
            save=save,
        )
    finally:
        await disconnect(session)

    if isinstance(result, TimeoutExhausted):
        return _fail(str(result))
    if result is None:
        return _fail("Could not compose the draft")
    _print(result.model_dump())
    return 0


@main.command()
@_draft_options
@click.pass_obj
def compose(endpoint: str, **fields: Any):
    """Open and fill a compose window without saving."""
    _run(_compose(endpoint, fields, save=False))


@main.command()
@_draft_options
@click.pass_obj
def draft(endpoint: str, **fields: Any):
    """Compose a draft and wait until the client reports it saved.

    \b
    mailpilot draft --to ann@example.com --subject "Q3" --body "Numbers attached."
    """
    _run(_compose(endpoint, fields, save=True))


@main.command()
@click.argument("thread_id")
@click.option("--body", required=True)
@click.option("--mode", type=click.Choice(sorted(REPLY_COMMANDS)), default="reply")
@click.option("--to", multiple=True, help="Extra recipient (forward)")
@click.pass_obj
def reply(endpoint: str, thread_id: str, body: str, mode: str, to: tuple[str, ...]):
    """Reply to a thread and save the reply as a draft."""

    async def run() -> int:
        session = await connect(endpoint, attach_visible=True)
        if session is None:
            return _fail(f"Mail client not attached at {endpoint}")
        try:
            automation = ComposeAutomation.for_session(session)
            key = await automation.open_reply_compose(thread_id, mode)
            if not key:
                return _fail(str(key) if isinstance(key, TimeoutExhausted) else f"Could not open {mode} compose")
            for email in to:
                if not await automation.add_recipient(key, email):
                    return _fail(f"Could not add recipient {email}")
            if not await automation.set_body(key, text_to_html(body)):
                return _fail("Could not set the reply body")
            if not await automation.save_draft(key):
                return _fail("Could not save the reply")
            state = await automation.get_draft_state(key)
        finally:
            await disconnect(session)

        _print(state.model_dump() if state else {"key": key, "saved": True})
        return 0

    _run(run())


@main.command()
@click.option("--host", default=None)
@click.option("--api-port", type=int, default=None)
def serve(host: str | None, api_port: int | None):
    """Run the HTTP control API."""
    from mailpilot.server import run

    run(host, api_port)


if __name__ == "__main__":
    main()
