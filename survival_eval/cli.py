"""Command-line runner for survival metric evaluation.

Scores a table of log-time predictions against censored labels and writes
the metric values as JSON.

Usage:
    # Default metrics (aft-nloglik with normal/1.0, interval-regression-accuracy)
    survival-eval --data preds.csv

    # Metric set from a YAML config, results saved to disk
    survival-eval \
        --data preds.csv \
        --config configs/aft-logistic.yaml \
        --output results/eval.json

    # Custom column names and sample weights
    survival-eval \
        --data preds.parquet \
        --prediction-column log_time_pred \
        --lower-column y_lower --upper-column y_upper \
        --weight-column w

    # Validate config and data without evaluating
    survival-eval --data preds.csv --config configs/aft-normal.yaml --dry-run

Input table columns (defaults):
    label_lower_bound  — lower bound of the event time (0 for left-censored)
    label_upper_bound  — upper bound (empty / inf for right-censored)
    prediction         — predicted log event time
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import platform
import sys
from datetime import datetime
from pathlib import Path

import pandas as pd

from .censoring import censoring_summary
from .errors import SurvivalEvalError
from .evaluator import Evaluator, validate_config
from .info import DataSplitMode, MetaInfo, load_frame, validate_predictions

logger = logging.getLogger("SurvivalEval")


def collect_environment_info() -> dict:
    """Collect system and runtime environment information."""
    info = {
        "python_version": sys.version.split()[0],
        "platform": platform.platform(),
        "hostname": platform.node(),
        "timestamp": datetime.now().isoformat(),
    }
    for lib in ["numpy", "scipy", "pandas", "torch", "yaml"]:
        try:
            mod = __import__(lib)
            info[f"{lib}_version"] = getattr(mod, "__version__", "unknown")
        except ImportError:
            pass
    return info


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="survival-eval",
        description="Evaluate AFT survival metrics on censored labels",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--data", type=str, default=None,
        help="CSV or Parquet file with label bounds and predictions "
             "(env: SURVIVAL_EVAL_DATA)",
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Metric YAML config (env: SURVIVAL_EVAL_CONFIG). "
             "Default: aft-nloglik + interval-regression-accuracy",
    )
    parser.add_argument("--prediction-column", type=str, default="prediction",
                        help="Column holding predicted log-times (default: prediction)")
    parser.add_argument("--lower-column", type=str, default="label_lower_bound",
                        help="Lower bound column (default: label_lower_bound)")
    parser.add_argument("--upper-column", type=str, default="label_upper_bound",
                        help="Upper bound column (default: label_upper_bound)")
    parser.add_argument("--weight-column", type=str, default=None,
                        help="Optional sample weight column")
    parser.add_argument(
        "--split-mode", type=str, default=DataSplitMode.ROW.value,
        choices=[m.value for m in DataSplitMode],
        help="How the data is partitioned across workers (default: row)",
    )
    parser.add_argument("--output", type=str, default=None,
                        help="Write results JSON to this path")
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Validate config and data without running evaluation",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Enable debug-level logging for detailed output",
    )
    parser.add_argument(
        "--quiet", action="store_true",
        help="Reduce logging to warnings and errors only",
    )

    args = parser.parse_args(argv)

    if args.data is None:
        args.data = os.environ.get("SURVIVAL_EVAL_DATA", None)
    if args.config is None:
        args.config = os.environ.get("SURVIVAL_EVAL_CONFIG", None)
    if args.data is None:
        parser.error("--data is required (or set SURVIVAL_EVAL_DATA)")

    return args


def run_dry_run(args: argparse.Namespace) -> int:
    """Check config schema and label validity without evaluating."""
    logger.info("=" * 72)
    logger.info("  DRY RUN — Checking config and data")
    logger.info("=" * 72)

    ok = True
    if args.config:
        config_errors = validate_config(args.config)
        if config_errors:
            ok = False
            logger.warning("  Config validation FAILED:")
            for err in config_errors:
                logger.warning(f"    - {err}")
        else:
            logger.info(f"  Config validation: OK ({args.config})")
    else:
        logger.info("  Config: default metric set")

    df = load_frame(args.data)
    try:
        info = MetaInfo.from_frame(
            df,
            lower_col=args.lower_column,
            upper_col=args.upper_column,
            weight_col=args.weight_column,
            data_split_mode=args.split_mode,
        )
        if args.prediction_column not in df.columns:
            raise SurvivalEvalError(
                f"Prediction column '{args.prediction_column}' not found"
            )
        info.validate(len(df))
        validate_predictions(
            pd.to_numeric(df[args.prediction_column], errors="coerce").to_numpy(dtype=float)
        )
        counts = censoring_summary(info.labels_lower_bound, info.labels_upper_bound)
        logger.info(f"  Data validation: OK ({info.num_row} rows, censoring={counts})")
    except SurvivalEvalError as e:
        ok = False
        logger.warning(f"  Data validation FAILED: {e}")

    logger.info("  Dry run complete. No evaluation was performed.")
    return 0 if ok else 1


def run_evaluation(args: argparse.Namespace) -> int:
    evaluator = Evaluator.from_config(args.config) if args.config else Evaluator()
    df = load_frame(args.data)
    result = evaluator.evaluate_frame(
        df,
        pred_col=args.prediction_column,
        lower_col=args.lower_column,
        upper_col=args.upper_column,
        weight_col=args.weight_column,
        data_split_mode=args.split_mode,
    )

    if not evaluator.is_main_process:
        return 0

    payload = {
        "results": result,
        "metrics": evaluator.save_config(),
        "data": str(args.data),
        "environment": collect_environment_info(),
    }
    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            json.dump(payload, f, indent=2, default=str)
        logger.info(f"Results saved → {output_path}")
    else:
        print(json.dumps(result, indent=2, default=str))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    if args.verbose:
        log_level = logging.DEBUG
    elif args.quiet:
        log_level = logging.WARNING
    else:
        log_level = logging.INFO

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=log_level,
    )

    try:
        if args.dry_run:
            return run_dry_run(args)
        return run_evaluation(args)
    except (SurvivalEvalError, FileNotFoundError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
