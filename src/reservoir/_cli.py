import asyncio
import logging
import random
from contextlib import contextmanager
from itertools import count
from time import perf_counter

import click

from reservoir._logging import configure_logging
from reservoir.event import CancellationReason
from reservoir.event import PoolHooks
from reservoir.exceptions import PoolError
from reservoir.options import PoolOptions
from reservoir.pool import Pool


@contextmanager
def timer():
    """Context manager to measure the execution time of a code block."""
    start = end = perf_counter()
    yield lambda: end - start
    end = perf_counter()


def debug(ctx, param, value):
    """
    Enable debugging with debugpy.

    :param ctx:
        Click context.
    :param param:
        Click parameter.
    :param value:
        Port the debugger listens on.
    """
    if not value or ctx.resilient_parsing:
        return

    import debugpy

    debugpy.listen(value)
    click.echo("Waiting for debugger to attach...")
    debugpy.wait_for_client()
    click.echo("Debugger attached")


def to_seconds(ctx, param, value):
    """Convert a millisecond option value to seconds."""
    if value is None:
        return None
    if value < 0:
        raise click.BadParameter("must be non-negative")
    return value / 1000


@click.group()
@click.option(
    "--debug",
    "-d",
    callback=debug,
    expose_value=False,
    help="Listen for a debugger on the specified port. Execution blocks until it attaches.",
    is_eager=True,
    type=int,
)
@click.option(
    "--verbosity",
    "-v",
    count=True,
    default=2,
    help="Verbosity level for logging.",
    type=int,
)
def cli(verbosity: int):
    """Tools for exercising reservoir resource pools."""
    match verbosity:
        case 0 | 1:
            level = logging.ERROR
        case 2:
            level = logging.WARNING
        case 3:
            level = logging.INFO
        case _:
            level = logging.DEBUG
    configure_logging(level)


@cli.command()
@click.option("--min-resources", type=int, default=0, show_default=True)
@click.option("--max-resources", type=int, default=4, show_default=True)
@click.option(
    "--borrowers", "-n", type=int, default=32, show_default=True,
    help="Number of concurrent borrowers.",
)
@click.option(
    "--hold", type=float, default=10, show_default=True, callback=to_seconds,
    help="Milliseconds each borrower holds its resource.",
)
@click.option(
    "--create-latency", type=float, default=5, show_default=True, callback=to_seconds,
    help="Milliseconds the simulated factory takes to create a resource.",
)
@click.option(
    "--timeout", type=float, default=None, callback=to_seconds,
    help="Borrow timeout in milliseconds.",
)
@click.option(
    "--max-age", type=float, default=None, callback=to_seconds,
    help="Resource max age in milliseconds.",
)
@click.option(
    "--max-outstanding", type=int, default=None,
    help="Maximum number of queued borrow requests.",
)
@click.option("--seed", type=int, default=None, help="Seed for hold-time jitter.")
def bench(
    min_resources,
    max_resources,
    borrowers,
    hold,
    create_latency,
    timeout,
    max_age,
    max_outstanding,
    seed,
):
    """Run concurrent borrowers against a pool of simulated resources."""
    try:
        options = PoolOptions(
            min_resources=min_resources,
            max_resources=max_resources,
            resource_max_age=max_age,
            max_outstanding_borrows=max_outstanding,
            default_borrow_timeout=timeout,
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    report = asyncio.run(
        _bench(options, borrowers, hold, create_latency, random.Random(seed))
    )
    for key, value in report.items():
        click.echo(f"{key + ':':<16}{value}")


async def _bench(options, borrowers, hold, create_latency, rng) -> dict:
    serial = count(1)
    counts = {"created": 0, "disposed": 0, "borrowed": 0}
    cancelled: dict[CancellationReason, int] = {}
    failures: dict[str, int] = {}

    async def factory():
        await asyncio.sleep(create_latency)
        return f"resource-{next(serial)}"

    def tally(key):
        def hook():
            counts[key] += 1

        return hook

    def on_cancelled(reason):
        cancelled[reason] = cancelled.get(reason, 0) + 1

    hooks = PoolHooks(
        on_create=tally("created"),
        on_dispose=tally("disposed"),
        on_borrow=tally("borrowed"),
        on_request_cancelled=on_cancelled,
    )

    peak = 0

    async def borrower():
        nonlocal peak
        try:
            async with pool.get():
                peak = max(peak, pool.stats.total_resources)
                await asyncio.sleep(hold * rng.uniform(0.5, 1.5))
        except PoolError as e:
            name = type(e).__name__
            failures[name] = failures.get(name, 0) + 1

    with timer() as elapsed:
        async with Pool(factory, options=options, hooks=hooks) as pool:
            await asyncio.gather(*(borrower() for _ in range(borrowers)))
        # let the hooks scheduled during teardown run
        await asyncio.sleep(0)

    return {
        "elapsed": f"{int(elapsed() * 1000 + 0.5)} ms",
        "borrowers": borrowers,
        "created": counts["created"],
        "disposed": counts["disposed"],
        "borrowed": counts["borrowed"],
        "peak": peak,
        "cancelled": ", ".join(f"{r.value}={n}" for r, n in cancelled.items()) or "-",
        "failed": ", ".join(f"{k}={n}" for k, n in failures.items()) or "-",
    }
