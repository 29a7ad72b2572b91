import sys, random
from typing import Any, Sequence
from .ontology import Phrase
from .stacking import Frame

def _outburst():
	particle = ["Oh, ", "Well, ", "Aw, ", "", ""]

	minced_oaths = [
		'Ack', 'ARGH', 'Blargh', 'Blasted Thing',
		'Confound it', 'Crud', 'Curses', "Crikey",
		'Dag Nabbit', 'Drat', 'Fiddlesticks',
		'Gack', 'Good Grief', "Great Scott",
		'SNAP', 'Jeepers', 'Heavens', "Mercy", 'Nuts', 'Rats',
	]

	resignations = [
		'The program is out of order.',
		'That instruction did not happen.',
		'The cells go dark.',
		'Somebody check the energy meter.',
		'I need to ask for help.',
	]

	return "%s%s! %s"%tuple(map(random.choice, (particle, minced_oaths, resignations)))

class Report:
	"""
	Collects what went wrong, for somebody to complain about later.
	Also the one place the run-time talks to the console about itself.
	"""
	_issues : list["Pic"]

	def __init__(self, *, verbose:int=0):
		self._verbose = verbose or 0   # Because None is incomparable.
		self._issues = []

	def sick(self): return bool(self._issues)

	def issue(self, it:Any):
		self._issues.append(it)

	def info(self, *args):
		if self._verbose:
			print(*args, file=sys.stderr)

	def trace(self, ident, instruction:Phrase, energy:int):
		""" With -vv, echo each top-level instruction as it runs. """
		if self._verbose > 1:
			print("% 6s | %-50r energy=%d" % (ident, instruction, energy), file=sys.stderr)

	def complain_to_console(self):
		""" Emit all the issues to the console. """
		_bemoan(self._issues)

	# Methods the engine calls:

	def fatal(self, frame:Frame, ex:Exception, site:Phrase):
		intro = "%s: %s" % (type(ex).__name__, ex)
		problem = trace_stack(frame) + [Annotation(site, "while running this")]
		footer = ["Everything this instruction did has been rolled back. The energy it cost has not."]
		self.issue(Pic(intro, problem, footer))

	def contained(self, error, site:Phrase):
		self.info("Contained %r within %r" % (error, site))

	def fault(self, error, site:Phrase):
		self.info("Runtime fault %r at %r" % (error, site))

class Annotation:
	caption: str
	def __init__(self, node, caption:str=""):
		self.node = node
		self.caption = caption
	def illustrate(self):
		text = "    %r" % (self.node,)
		if self.caption: text += "  <-- " + self.caption
		return text

class Tracer:
	def __init__(self):
		self.trace = []
	def called_from(self, pc:Phrase):
		self.trace.append(Annotation(pc, "called from here"))
	def hit_bottom(self):
		self.trace.append(Annotation("general scope"))
	def trace_frame(self, breadcrumb, bindings):
		bind_text = ', '.join("%s:%r" % pair for pair in bindings.items())
		self.trace.append(Annotation(breadcrumb, bind_text))

def trace_stack(frame:Frame) -> list[Annotation]:
	tracer = Tracer()
	frame.trace(tracer)
	return tracer.trace

class Pic:
	def __init__(self, intro:str, anns:list[Annotation], footer:Sequence[str]=()):
		self._intro, self._anns, self._footer = intro, anns, footer
	@property
	def intro(self): return self._intro
	def as_text(self):
		lines = [self._intro, ""]
		lines.extend(ann.illustrate() for ann in self._anns)
		lines.extend(self._footer)
		return '\n'.join(lines)

def _bemoan(issues):
	""" Emit all the issues to the console. """
	if issues:
		print("*"*60, file=sys.stderr)
		print(_outburst(), file=sys.stderr)
	for i in issues:
		print("  -"*20, file=sys.stderr)
		print(i.as_text(), file=sys.stderr)
	sys.stderr.flush()
