"""
rewardhound/cli.py

Command-line tools:

    rewardhound eligibility 0x...           Verify a claim against the pinned root
    rewardhound build-tree balances.json    Build claim shards and print the manifest
    rewardhound stats 0x...                 Show stored referral totals
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

from .chain import AddressOnNetwork, resolve_network
from .config import ShardSpec, load_config
from .distribution.claims import ClaimVerifier
from .distribution.fetcher import IntegrityFetcher, content_hash
from .distribution.merkle import MerkleTree
from .errors import NotEligible, RewardHoundError
from .referrals.ledger import ReferralLedger
from .storage import FileBackend

logger = logging.getLogger(__name__)

MAX_ADDRESS = "0x" + "f" * 40
MIN_ADDRESS = "0x" + "0" * 40


@click.group()
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), default=None,
              help='JSON config file (default: $REWARDHOUND_CONFIG)')
@click.option('--log-level', default='WARNING',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False))
@click.pass_context
def main(ctx, config_path, log_level):
    """Claim eligibility and referral ledger tools."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path


@main.command()
@click.argument('address')
@click.pass_context
def eligibility(ctx, address):
    """Check whether ADDRESS has a valid claim.

    Exit status: 0 eligible, 1 not eligible, 2 verification failed.
    """
    try:
        config = load_config(ctx.obj['config_path'])
    except ValueError as e:
        raise click.ClickException(str(e))

    fetcher = IntegrityFetcher.from_config(config.distribution)
    verifier = ClaimVerifier(fetcher, config.distribution.merkle_root)

    try:
        claim = asyncio.run(verifier.get_eligibility(address))
    except NotEligible:
        click.echo(f"{address} is not eligible")
        sys.exit(1)
    except (RewardHoundError, ValueError) as e:
        click.echo(f"Verification failed: {e}", err=True)
        sys.exit(2)

    click.echo(json.dumps(claim.to_dict(), indent=2))


def _split_even(accounts, count):
    size, extra = divmod(len(accounts), count)
    chunks, start = [], 0
    for i in range(count):
        end = start + size + (1 if i < extra else 0)
        if end > start:
            chunks.append(accounts[start:end])
        start = end
    return chunks


@main.command('build-tree')
@click.argument('balances', type=click.Path(exists=True, dir_okay=False))
@click.option('--out', 'out_dir', type=click.Path(file_okay=False), default='claims',
              help='Directory for shard files')
@click.option('--shards', 'shard_count', type=click.IntRange(min=1), default=1,
              help='Number of shard files')
def build_tree(balances, out_dir, shard_count):
    """Build claim shards from a BALANCES JSON object of address -> amount.

    Prints a distribution config (merkle root plus pinned shard hashes).
    """
    with open(balances, "r") as f:
        raw = json.load(f)

    try:
        amounts = {address: int(str(amount), 0) for address, amount in raw.items()}
        tree = MerkleTree.from_balances(amounts)
    except (ValueError, AttributeError) as e:
        raise click.ClickException(f"Invalid balances file: {e}")

    distribution = tree.to_distribution()
    claims = distribution["claims"]
    accounts = sorted(claims, key=lambda a: int(a, 16))

    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)

    chunks = _split_even(accounts, min(shard_count, len(accounts)))
    shards = []
    for i, chunk in enumerate(chunks):
        # Ranges tile the whole address space so every address maps to a shard
        start = MIN_ADDRESS if i == 0 else chunk[0].lower()
        end = MAX_ADDRESS if i == len(chunks) - 1 else hex(int(chunks[i + 1][0], 16) - 1)
        end = "0x" + end[2:].rjust(40, "0")

        content = json.dumps(
            {"merkleRoot": tree.root, "claims": {a: claims[a] for a in chunk}},
            indent=2,
        ).encode()
        shard_id = f"part-{i:04d}.json"
        (out / shard_id).write_bytes(content)

        shards.append(ShardSpec(
            shard_id=shard_id,
            start_address=start,
            end_address=end,
            content_hash=content_hash(content),
        ).to_dict())

    click.echo(json.dumps({
        "merkle_root": tree.root,
        "token_total": str(int(distribution["tokenTotal"], 16)),
        "shards": shards,
    }, indent=2))


@main.command()
@click.argument('address')
@click.option('--network', default=None, help='Network name (default: configured network)')
@click.pass_context
def stats(ctx, address, network):
    """Show referral totals recorded for ADDRESS."""
    try:
        config = load_config(ctx.obj['config_path'])
        referrer = AddressOnNetwork(
            address,
            resolve_network(network) if network else config.network,
        )
    except ValueError as e:
        raise click.ClickException(str(e))

    ledger = ReferralLedger(FileBackend(config.get_storage_dir()))
    result = asyncio.run(ledger.get_stats(referrer))
    click.echo(json.dumps({"referrer": referrer.address, **result.to_dict()}, indent=2))


if __name__ == "__main__":
    main()
