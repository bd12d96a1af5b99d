import argparse
import asyncio
import json
import logging
import os

import networkx as nx

from .browser import PlaywrightActuator, PlaywrightPerception, PollingPerception, open_page, selector_visible
from .config import EngineConfig
from .interaction_engine import InteractionCycleEngine, RunBudget, RunSummary
from .knowledge import GameDescriptor
from .state_detector import ScreenshotStrategy, StateChangeDetector, StructuralStrategy

logging.basicConfig(level=logging.INFO)


def _load_descriptor(args: argparse.Namespace) -> GameDescriptor:
    if args.descriptor:
        with open(args.descriptor, "r", encoding="utf-8") as fh:
            return GameDescriptor.from_dict(json.load(fh))
    return GameDescriptor.from_dict(
        {
            "name": args.url,
            "candidateKeys": args.keys or [],
            "candidateGestures": ["click"] if args.click else [],
            "startHint": args.start_hint,
            "startLabel": args.start_label,
        }
    )


async def _run(args: argparse.Namespace) -> RunSummary:
    strategy = StructuralStrategy() if args.strategy == "structural" else ScreenshotStrategy()
    overrides = {}
    if args.max_actions is not None:
        overrides["max_actions_per_run"] = args.max_actions
    if args.budget_ms is not None:
        overrides["time_budget_ms"] = args.budget_ms
    config = EngineConfig.from_env(**overrides)

    async with open_page(args.url, headless=args.headless) as page:
        perception = PlaywrightPerception(page, strategy)
        if args.settle_selector:
            perception = PollingPerception(perception, selector_visible(page, args.settle_selector))
        engine = InteractionCycleEngine(
            actuator=PlaywrightActuator(page),
            perception=perception,
            detector=StateChangeDetector(strategy),
            config=config,
            descriptor=_load_descriptor(args),
        )
        summary = await engine.run_until_budget_or_completion(
            RunBudget(time_budget_ms=config.time_budget_ms, max_cycles=args.cycles, observe_first=args.observe_first)
        )

    os.makedirs(args.out, exist_ok=True)
    with open(os.path.join(args.out, "summary.json"), "w", encoding="utf-8") as fh:
        json.dump(summary.to_json(), fh, indent=2)

    # GraphML cannot hold arbitrary objects, copy the plain structure only
    g_ml = nx.MultiDiGraph()
    g_raw = engine.transition_graph().to_networkx()
    for nid in g_raw.nodes:
        g_ml.add_node(nid)
    for u, v, k, data in g_raw.edges(keys=True, data=True):
        g_ml.add_edge(u, v, key=k, changed=bool(data.get("changed")), confidence=int(data.get("confidence", 0)))
    try:
        nx.write_graphml(g_ml, os.path.join(args.out, "transitions.graphml"))
    except Exception as e:
        logging.getLogger(__name__).warning("Failed to write GraphML: %s", e)
    return summary


def main() -> None:
    parser = argparse.ArgumentParser(description="Probe a browser game for working inputs")
    parser.add_argument("--url", required=True, help="Game URL to test")
    parser.add_argument("--descriptor", help="JSON file produced by the game-analysis step")
    parser.add_argument("--keys", nargs="*", help="Candidate keys when no descriptor file is given")
    parser.add_argument("--click", action="store_true", help="Game is believed to accept mouse clicks")
    parser.add_argument("--start-hint", default="auto", choices=["button", "key", "auto"])
    parser.add_argument("--start-label", help="Label of the start button, if any")
    parser.add_argument("--strategy", default="screenshot", choices=["screenshot", "structural"])
    parser.add_argument("--settle-selector", help="Wait for this selector to be visible before each snapshot")
    parser.add_argument("--observe-first", action="store_true", help="Prefer discovered elements over the catalog")
    parser.add_argument("--cycles", type=int, default=None, help="Stop after this many cycles")
    parser.add_argument("--max-actions", type=int, default=None, help="Maximum number of actions to execute")
    parser.add_argument("--budget-ms", type=int, default=None, help="Time budget for the whole run")
    parser.add_argument("--headless", action="store_true", help="Run browser in headless mode")
    parser.add_argument("--out", default="run_artifacts", help="Directory to save run artefacts")
    args = parser.parse_args()

    print(f"Starting interaction run on {args.url}")
    summary = asyncio.run(_run(args))
    print(f"Run finished ({summary.state.value}, {summary.stop_reason.value if summary.stop_reason else '-'})")
    print("Actions performed:", summary.actions_performed)
    print("Actions that changed the page:", summary.successful_actions)
    print("Screens navigated:", summary.screens_navigated)


if __name__ == "__main__":
    main()
