"""
Putting the pieces together: commit a program to the general scope and run it on the tick clock.
"""
from typing import Iterable
from .ontology import Instruction
from .runtime import Engine
from .scheduler import TickScheduler

def run_program(instructions: Iterable[Instruction], engine: Engine = None, max_ticks: int = None) -> Engine:
	engine = engine or Engine()
	for instruction in instructions:
		engine.commit(instruction)
	scheduler = TickScheduler(engine)
	try: scheduler.run(max_ticks)
	finally: scheduler.close()
	return engine
