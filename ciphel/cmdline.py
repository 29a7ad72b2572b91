"""
This is the run-time for the Ciphel scripting language.

{0}

Ciphel source is parsed by the game; this command takes a Python module
that builds the parsed program directly, as a list called PROGRAM of
instruction nodes from ciphel.syntax. For example:

    ciphel examples/countdown.py

will run it with the default energy budget, and

    ciphel examples/countdown.py -e 200 -vv

will run it on a tighter budget, tracing each instruction.
"""
import sys, argparse
import importlib.util
from pathlib import Path

parser = argparse.ArgumentParser(
	prog="ciphel",
	description="Run-time for the Ciphel scripting language.",
)
parser.add_argument("program", help="try examples/countdown.py for example.")
parser.add_argument('-e', "--energy", type=int, default=None, help="Energy the player starts with.")
parser.add_argument('-t', "--ticks", type=int, default=None, help="Stop after this many ticks.")
parser.add_argument('-v', "--verbose", action="count", default=0, help="Say more. Twice traces every instruction.")

def load_program(path: Path) -> list:
	spec = importlib.util.spec_from_file_location(path.stem, path)
	module = importlib.util.module_from_spec(spec)
	spec.loader.exec_module(module)
	return list(module.PROGRAM)

def run(args):
	from .diagnostics import Report
	from .ontology import EngineFatal
	from .ledger import Player, DEFAULT_ENERGY
	from .runtime import Engine
	from .executive import run_program
	report = Report(verbose=args.verbose)
	path = Path.cwd() / args.program
	try: program = load_program(path)
	except (OSError, AttributeError) as ex:
		print("Could not load a PROGRAM from %s: %s" % (path, ex), file=sys.stderr)
		return 1
	player = Player(DEFAULT_ENERGY if args.energy is None else args.energy)
	engine = Engine(player=player, report=report)
	try: run_program(program, engine, max_ticks=args.ticks)
	except EngineFatal:
		report.complain_to_console()
		return 1
	report.info("Spent %d energy; %d remains." % (player.consumed, player.energy))
	return 0

def main():
	if len(sys.argv) > 1:
		exit(run(parser.parse_args()))
	else:
		print(__doc__.strip().format(parser.format_usage()))
