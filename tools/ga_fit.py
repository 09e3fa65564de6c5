"""
Genetic-algorithm drum voice fitting against a target WAV.

Simple usage:
  python tools/ga_fit.py --target path/to/kick909.wav --synth my_voice:render

The renderer is any importable callable (or class with a `render` method)
that turns a kickpad Genome into a numpy sample buffer at the genome's
sample rate.

Full options:
  python tools/ga_fit.py --target kick.wav --synth my_voice:KickVoice \\
      --population 100 --generations 1000 --stagnation 10 --out fitted.json

Settings not given on the command line come from the stored config
(see --config / --save-config), falling back to the built-in defaults.
Press Ctrl-C to stop early; the best voice found so far is still reported.
"""

from __future__ import annotations

import argparse
import json
import math
import os
import sys
import time
from typing import Dict, List, Optional

# Ensure project root is on sys.path for direct script execution
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from kickpad.audio import WavFileLoader, load_synthesizer
from kickpad.config import SAMPLE_RATES, ConfigStore, OptimizerConfig
from kickpad.controller import RunController
from kickpad.genome import Genome, WaveformType
from kickpad.optimizer import RunSnapshot, RunState


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fit drum synthesizer settings to a target WAV using a genetic algorithm")
    parser.add_argument("--target", required=True, help="Path to target WAV")
    parser.add_argument("--synth", required=True, help="Renderer as 'module:attribute'")
    parser.add_argument("--out", default="", help="Write the best genome as JSON to this path")
    parser.add_argument("--config", default="", help="Config JSON path (default: per-user config file)")
    parser.add_argument("--save-config", action="store_true", help="Store the effective settings back to the config file")
    parser.add_argument("--population", type=int, help="Population size")
    parser.add_argument("--tournament", type=int, help="Tournament size")
    parser.add_argument("--elite", type=int, help="Number of elites copied unchanged")
    parser.add_argument("--mutation-rate", type=float, help="Per-gene mutation probability")
    parser.add_argument("--generations", type=int, help="Maximum generations")
    parser.add_argument("--stagnation", type=int, help="Stop after this many generations without improvement")
    parser.add_argument("--threshold", type=float, help="Stop once the best fitness drops below this")
    parser.add_argument("--basic-waveforms", action="store_true", help="Only search sine and triangle waveforms")
    parser.add_argument("--sample-rate", type=int, choices=SAMPLE_RATES, help="Working sample rate")
    parser.add_argument("--bit-depth", type=int, choices=(16, 24), help="Working bit depth")
    parser.add_argument("--workers", type=int, help="Parallel evaluation threads (1=serial)")
    parser.add_argument("--seed", type=int, help="Random seed")
    parser.add_argument("--no-normalize", action="store_true", help="Keep the target at its recorded level")
    parser.add_argument("--poll", type=float, default=0.2, help="Status poll interval in seconds")
    parser.add_argument("--quiet", action="store_true", help="Only print the final result")
    return parser


def config_overrides(args: argparse.Namespace) -> Dict:
    mapping = {
        "population_size": args.population,
        "tournament_size": args.tournament,
        "elite_count": args.elite,
        "mutation_rate": args.mutation_rate,
        "max_generations": args.generations,
        "max_stagnation": args.stagnation,
        "convergence_threshold": args.threshold,
        "sample_rate": args.sample_rate,
        "bit_depth": args.bit_depth,
        "workers": args.workers,
        "seed": args.seed,
    }
    overrides = {key: value for key, value in mapping.items() if value is not None}
    if args.basic_waveforms:
        overrides["waveform_mode"] = "basic"
    return overrides


def describe_genome(genome: Genome) -> List[str]:
    lines = []
    for name, value in genome.genes().items():
        if name == "waveform":
            lines.append(f"  {name:14s}: {WaveformType(value).name.replace('_', ' ').title()}")
        else:
            lines.append(f"  {name:14s}: {value:.4f}")
    lines.append(f"  {'sample_rate':14s}: {genome.sample_rate} Hz, {genome.bit_depth}-bit, {genome.channels} ch")
    return lines


def run_fit(controller: RunController, target, config: OptimizerConfig,
            poll: float, quiet: bool) -> RunSnapshot:
    result = controller.start(target, config)
    if not result:
        raise RuntimeError(result.reason)

    last_score = math.inf
    try:
        while True:
            status = controller.current_status()
            if status.is_terminal:
                return status
            if status.state is RunState.IDLE:
                # The loop crashed; the controller kept its progress as last_result
                raise RuntimeError(status.reason)
            if not quiet and status.best_score < last_score:
                last_score = status.best_score
                print(f"[GA] Generation {status.generation}: Best fitness = {status.best_score:.6f}")
            time.sleep(poll)
    except KeyboardInterrupt:
        print("\n[GA] Stop requested, finishing current generation...")
        controller.cancel()
        return controller.wait()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    store = ConfigStore(args.config or None)
    try:
        config = store.load().replace(**config_overrides(args))
    except ValueError as e:
        print(f"[Config] {e}", file=sys.stderr)
        return 2
    if args.save_config:
        store.save(config)
        print(f"[Config] Saved settings to {store.path}")

    try:
        target = WavFileLoader().load_target(args.target, normalize=not args.no_normalize)
    except (OSError, ValueError) as e:
        print(f"[Target] {e}", file=sys.stderr)
        return 1
    print(f"[Target] Loaded {args.target}: {target.duration:.3f}s @ {target.sample_rate} Hz")

    try:
        synthesizer = load_synthesizer(args.synth)
    except (ImportError, ValueError, TypeError) as e:
        print(f"[Synth] {e}", file=sys.stderr)
        return 1

    print(f"[Config] population={config.population_size} elite={config.elite_count} "
          f"tournament={config.tournament_size} mutation={config.mutation_rate} "
          f"waveforms={config.waveform_mode.value} sr={config.sample_rate}")

    controller = RunController(synthesizer)
    try:
        final = run_fit(controller, target, config, args.poll, args.quiet)
    except RuntimeError as e:
        print(f"[GA] {e}", file=sys.stderr)
        return 1
    finally:
        controller.shutdown()

    print(f"[GA] {final.reason}")
    if final.best_genome is None:
        print("[GA] No voice could be rendered for this target.")
        return 1

    print(f"Best fitness: {final.best_score:.6f} (generation {final.generation}, {final.elapsed:.1f}s)")
    for line in describe_genome(final.best_genome):
        print(line)

    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            json.dump({
                "loss": final.best_score,
                "generation": final.generation,
                "state": final.state.value,
                "reason": final.reason,
                "params": final.best_genome.to_dict(),
            }, f, indent=2)
        print(f"Saved parameters: {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
