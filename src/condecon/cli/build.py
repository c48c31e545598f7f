"""
condecon-build — Build a synthetic deconvolution training set.

Subcommands
-----------
  init-config  Write a starter JSON configuration.
  build        Generate the training set from a count matrix and a latent embedding.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

TRAINING_FLAGS = (
    "max_iter", "max_cent", "min_cent", "step", "dims", "n",
    "sigma_min_cells", "sigma_max_cells", "max_retries",
)


def setup_logging(level: str = "INFO") -> logging.Logger:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s: %(message)s",
    )
    return logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="condecon-build",
        description="Build a synthetic bulk / cell-probability training set.",
    )
    subs = parser.add_subparsers(dest="command", required=True)

    # ------------------------------------------------------------------
    # init-config
    # ------------------------------------------------------------------
    ip = subs.add_parser("init-config", help="Write a starter JSON config.")
    ip.add_argument("--output", required=True, help="Config path to write.")

    # ------------------------------------------------------------------
    # build
    # ------------------------------------------------------------------
    bp = subs.add_parser("build", help="Build the training set.")
    bp.add_argument("--count", required=True, help="Count matrix CSV/TSV (genes × cells).")
    bp.add_argument("--latent", required=True, help="Latent embedding CSV/TSV (cells × dims).")
    bp.add_argument("--output-dir", required=True, help="Directory for the saved training set.")
    bp.add_argument("--config", help="JSON config (see init-config).")
    bp.add_argument("--max-iter", type=int, help="Number of synthetic examples.")
    bp.add_argument("--max-cent", type=int, help="Maximum number of mixture centres.")
    bp.add_argument("--min-cent", type=int, help="Minimum number of mixture centres.")
    bp.add_argument("--step", type=int, help="Examples aggregated per batch.")
    bp.add_argument("--dims", type=int, help="Latent dimensions used for distances.")
    bp.add_argument("--n", type=int, help="Cells sampled per example.")
    bp.add_argument("--sigma-min-cells", type=float)
    bp.add_argument("--sigma-max-cells", type=float)
    bp.add_argument("--max-retries", type=int)
    bp.add_argument("--seed", type=int)
    bp.add_argument("--log-level", default="INFO",
                    choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    return parser


def _read_table(path: str):
    import pandas as pd

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Input file not found: {p}")
    sep = "\t" if p.suffix in {".tsv", ".txt"} or p.name.endswith(".tsv.gz") else ","
    return pd.read_csv(p, sep=sep, index_col=0)


def handle_init_config(args, logger: logging.Logger) -> None:
    from condecon.training.config import write_starter_config

    write_starter_config(args.output)
    logger.info("Wrote starter config to %s", args.output)


def handle_build(args, logger: logging.Logger) -> None:
    from condecon.training.build import build_training_set
    from condecon.training.config import DEFAULT_CONFIG, load_config
    from condecon.utils.trainingIO import save_training_set

    cfg = load_config(args.config) if args.config else DEFAULT_CONFIG
    params = dict(cfg["training"])
    for name in TRAINING_FLAGS:
        value = getattr(args, name)
        if value is not None:
            params[name] = value
    seed = args.seed if args.seed is not None else cfg.get("seed")

    count = _read_table(args.count)
    latent = _read_table(args.latent)
    logger.info("Loaded %d genes × %d cells; latent %d × %d",
                count.shape[0], count.shape[1], latent.shape[0], latent.shape[1])

    count.columns = count.columns.astype(str)
    latent.index = latent.index.astype(str)
    if list(count.columns) != list(latent.index):
        if set(count.columns) != set(latent.index):
            raise ValueError("Cell identifiers of the count matrix and the latent embedding differ")
        latent = latent.loc[count.columns]
        logger.info("Reordered latent embedding to match count matrix columns")

    training_set = build_training_set(count, latent, seed=seed, **params)
    save_training_set(training_set, args.output_dir)
    logger.info("Saved %d synthetic examples to %s", training_set.n_examples, args.output_dir)


def cli(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = setup_logging(getattr(args, "log_level", "INFO"))

    if args.command == "init-config":
        handle_init_config(args, logger)
    elif args.command == "build":
        handle_build(args, logger)
    else:
        parser.error(f"Unknown command: {args.command}")


if __name__ == "__main__":
    cli(sys.argv[1:])
