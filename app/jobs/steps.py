"""Named progress bands for each artifact kind."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ProgressStep:
  name: str
  start: float
  end: float


@dataclass(frozen=True)
class StepPlan:
  """Ordered, contiguous progress bands covering 0 to 100."""

  steps: tuple[ProgressStep, ...]

  def __post_init__(self) -> None:
    if not self.steps or self.steps[0].start != 0 or self.steps[-1].end != 100:
      raise ValueError("Step bands must cover 0 to 100.")
    for previous, current in zip(self.steps, self.steps[1:], strict=False):
      if previous.end != current.start:
        raise ValueError(f"Step bands must be contiguous ({previous.name} -> {current.name}).")

  @property
  def names(self) -> tuple[str, ...]:
    return tuple(step.name for step in self.steps)

  def get(self, name: str) -> ProgressStep:
    for step in self.steps:
      if step.name == name:
        return step
    raise KeyError(f"Unknown progress step: {name}")

  def progress_for(self, name: str, fraction: float = 1.0) -> float:
    """Map a fraction of work inside ``name`` onto the overall 0-100 scale."""
    step = self.get(name)
    fraction = min(1.0, max(0.0, fraction))
    return round(step.start + (step.end - step.start) * fraction, 2)

  def current_step(self, progress: float) -> str:
    for step in self.steps:
      if progress < step.end:
        return step.name
    return self.steps[-1].name

  def completed_steps(self, progress: float) -> list[str]:
    return [step.name for step in self.steps if progress >= step.end]

  def pending_steps(self, progress: float) -> list[str]:
    return [step.name for step in self.steps if progress < step.start]


NOTE_STEPS = StepPlan(
  (
    ProgressStep("analyzing", 0, 15),
    ProgressStep("transcribing", 15, 70),
    ProgressStep("verifying", 70, 80),
    ProgressStep("graphics", 80, 95),
    ProgressStep("finalizing", 95, 100),
  )
)

QUIZ_STEPS = StepPlan(
  (
    ProgressStep("preparing", 0, 5),
    ProgressStep("analyzing", 5, 15),
    ProgressStep("generating", 15, 85),
    ProgressStep("verifying", 85, 95),
    ProgressStep("finalizing", 95, 100),
  )
)

STEP_PLANS: dict[str, StepPlan] = {"note": NOTE_STEPS, "quiz": QUIZ_STEPS}
