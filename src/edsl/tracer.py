"""
Compile tracing for edsl.

When debug mode is enabled, the compiler records one PipelineStage per step
(parse, build, layout) with counts, the chosen algorithm and the time each
step took. Useful for finding out why a diagram is slow to lay out or which
configuration actually reached the layout engine.

Usage:
    >>> compiler = EDSLCompiler()
    >>> graph = compiler.compile("a -> b", debug=True)
    >>> trace = compiler.get_trace()
    >>> print(trace.summary())
    >>> trace.dump_to_file("compile_trace.txt")
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class PipelineStage:
    """
    Snapshot of state after a pipeline stage.

    Attributes:
        name: Name of this pipeline stage (parse, build, layout)
        data: Dictionary of relevant data at this stage
        elapsed: Seconds spent in the stage
    """

    name: str
    data: Dict[str, Any]
    elapsed: float = 0.0

    def __str__(self) -> str:
        lines = [f"=== Stage: {self.name} ({self.elapsed * 1000:.2f} ms) ==="]
        for key, value in self.data.items():
            # Truncate long values
            str_val = str(value)
            if len(str_val) > 100:
                str_val = str_val[:100] + "..."
            lines.append(f"  {key}: {str_val}")
        return "\n".join(lines)


@dataclass
class CompileTrace:
    """
    Complete trace of one compilation.

    Attributes:
        stages: Pipeline stages in execution order
        input_text: The source text that was compiled
        algorithm: Layout algorithm that ran (empty until layout)
    """

    stages: List[PipelineStage] = field(default_factory=list)
    input_text: str = ""
    algorithm: str = ""

    def add_stage(self, name: str, data: Dict[str, Any], elapsed: float = 0.0) -> None:
        """
        Add a pipeline stage snapshot.

        Args:
            name: Name of the stage (e.g., "layout")
            data: Dictionary of relevant data at this stage
            elapsed: Seconds spent in the stage
        """
        self.stages.append(PipelineStage(name, data.copy(), elapsed))

    def get_stage(self, name: str) -> Optional[PipelineStage]:
        """Get a specific pipeline stage by name."""
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    @property
    def total_elapsed(self) -> float:
        return sum(stage.elapsed for stage in self.stages)

    def summary(self) -> str:
        """
        Generate a human-readable summary of the trace.

        Returns a string with the input text, the algorithm and one line
        per stage with its timing.
        """
        lines = [
            "=" * 60,
            "COMPILE TRACE SUMMARY",
            "=" * 60,
            "",
            f"Algorithm: {self.algorithm or '-'}",
            f"Input: {repr(self.input_text[:100])}"
            f"{'...' if len(self.input_text) > 100 else ''}",
            "",
            f"Pipeline stages: {len(self.stages)}",
        ]
        for stage in self.stages:
            lines.append(f"  {stage.name}: {stage.elapsed * 1000:.2f} ms")
        lines.append(f"Total: {self.total_elapsed * 1000:.2f} ms")
        return "\n".join(lines)

    def dump(self) -> str:
        """Generate a complete human-readable dump of the trace."""
        lines = [self.summary(), "", "=" * 60, "DETAILED TRACE", "=" * 60, ""]
        for stage in self.stages:
            lines.append(str(stage))
            lines.append("")
        return "\n".join(lines)

    def dump_to_file(self, filename: str) -> None:
        """Write the complete trace dump to a file."""
        with open(filename, "w", encoding="utf-8") as f:
            f.write(self.dump())
