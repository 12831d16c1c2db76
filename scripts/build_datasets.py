#!/usr/bin/env python
"""Run the fiber and schools pipelines one after the other."""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

import requests
from tqdm import tqdm

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from etl.config import FiberConfig, SchoolsConfig
from etl.errors import EtlError
from etl.fiber import FiberPipeline
from etl.schools import SchoolsAssembler
from utils import http

LOGGER = logging.getLogger(__name__)

PIPELINES = ("fiber", "schools")


@dataclass
class PipelineResult:
    name: str
    status: str
    feature_count: int = 0
    message: str = ""


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rebuild the published GeoJSON datasets.")
    parser.add_argument(
        "--only",
        choices=PIPELINES,
        action="append",
        default=None,
        help="Run only the named pipeline (repeatable). Default: all.",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=ROOT_DIR,
        help="Base directory holding data/ and public/ (default: repository root)",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser.parse_args(argv)


def run_pipeline(name: str, runner: Callable[[], Dict]) -> PipelineResult:
    try:
        collection = runner()
    except (EtlError, requests.RequestException, OSError, ValueError) as exc:
        LOGGER.error("Pipeline %s failed: %s", name, exc)
        return PipelineResult(name=name, status="failed", message=str(exc))
    return PipelineResult(name=name, status="success", feature_count=len(collection.get("features", [])))


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )
    project_root = args.project_root.resolve()
    selected = args.only or list(PIPELINES)

    results: List[PipelineResult] = []
    with http.build_session() as session:
        runners: Dict[str, Callable[[], Dict]] = {
            "fiber": lambda: FiberPipeline(FiberConfig.from_env(project_root=project_root), session=session).run(),
            "schools": lambda: SchoolsAssembler(SchoolsConfig.from_env(project_root=project_root), session=session).run(),
        }
        with tqdm(total=len(selected), unit="dataset", desc="Datasets") as progress:
            for name in selected:
                result = run_pipeline(name, runners[name])
                results.append(result)
                if result.status == "failed":
                    tqdm.write(f"Pipeline {name} failed: {result.message or 'see logs'}")
                progress.update(1)

    failed = [result for result in results if result.status == "failed"]
    for result in results:
        LOGGER.info("%s: %s (%d features)", result.name, result.status, result.feature_count)
    return 0 if not failed else 1


if __name__ == "__main__":
    sys.exit(main())
