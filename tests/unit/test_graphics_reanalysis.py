from __future__ import annotations

import pytest

from app.ai.circuit_breaker import CircuitOpenError
from app.ai.contracts import GraphicAnalysis
from app.ai.errors import PassFailedError
from app.jobs.models import GraphicRecord
from app.services.graphics import GraphicsReanalyzer, graphics_stats, select_for_reanalysis
from app.storage.graphics_repo import needs_reanalysis


def _graphic(graphic_id: str, *, page: int = 1, confidence: float = 0.5, elements: list[str] | None = None, graphic_type: str = "diagram") -> GraphicRecord:
  return GraphicRecord(graphic_id=graphic_id, course_id="c1", page_number=page, graphic_type=graphic_type, description=f"Graphic {graphic_id}", confidence=confidence, elements=elements, image_uri=f"gs://bucket/{graphic_id}.png")


def _analysis(payload) -> GraphicAnalysis:
  return GraphicAnalysis(graphic_type="chart", description=f"Reanalysed {payload['graphic']['id']}", confidence=0.97, elements=["axis"], suggestions=["Read left to right"], related_concepts=["growth"])


def test_selection_matches_low_confidence_or_missing_elements() -> None:
  graphics = [
    _graphic("low", confidence=0.4, elements=["x"]),
    _graphic("no-elements", confidence=0.95, elements=None),
    _graphic("empty-elements", confidence=0.95, elements=[]),
    _graphic("good", confidence=0.9, elements=["x"]),
  ]

  assert [record.graphic_id for record in select_for_reanalysis(graphics)] == ["low", "no-elements"]
  assert not needs_reanalysis(graphics[2])


def test_graphics_stats_counts_types() -> None:
  graphics = [_graphic("a", graphic_type="chart"), _graphic("b", graphic_type="chart", confidence=0.95, elements=["x"]), _graphic("c")]

  assert graphics_stats(graphics) == {"total": 3, "needs_reanalysis": 2, "by_type": {"chart": 2, "diagram": 1}}


@pytest.mark.anyio
async def test_reanalysis_updates_successes_and_keeps_failures(graphics_repo, fake_runner) -> None:
  await graphics_repo.add_graphics([_graphic("g1", page=1), _graphic("g2", page=2), _graphic("g3", page=3, confidence=0.99, elements=["ok"])])

  def _handler(payload):
    if payload["graphic"]["id"] == "g2":
      raise PassFailedError("graphic_analysis", RuntimeError("unreadable image"))
    return _analysis(payload)

  runner = fake_runner({"graphic_analysis": _handler})
  reanalyzer = GraphicsReanalyzer(repo=graphics_repo, runner=runner, batch_size=1)

  updated = await reanalyzer.reanalyze("c1", pages=["Page one text", "Page two text"])

  assert updated == 1
  assert runner.calls == ["graphic_analysis", "graphic_analysis"]
  first = graphics_repo.graphics["g1"]
  assert (first.graphic_type, first.confidence, first.elements) == ("chart", 0.97, ["axis"])
  assert not needs_reanalysis(first)
  assert graphics_repo.graphics["g2"] == _graphic("g2", page=2)


@pytest.mark.anyio
async def test_open_breaker_skips_remaining_graphics(graphics_repo, fake_runner) -> None:
  await graphics_repo.add_graphics([_graphic("g1"), _graphic("g2", page=2)])

  def _handler(payload):
    raise CircuitOpenError("vision", 45)

  reanalyzer = GraphicsReanalyzer(repo=graphics_repo, runner=fake_runner({"graphic_analysis": _handler}))

  assert await reanalyzer.reanalyze("c1") == 0
  assert graphics_repo.graphics["g1"].confidence == 0.5


@pytest.mark.anyio
async def test_reanalysis_respects_max_graphics(graphics_repo, fake_runner) -> None:
  await graphics_repo.add_graphics([_graphic(f"g{index}", page=index) for index in range(1, 6)])
  runner = fake_runner({"graphic_analysis": _analysis})

  updated = await GraphicsReanalyzer(repo=graphics_repo, runner=runner, batch_size=2, max_graphics=3).reanalyze("c1")

  assert updated == 3
  assert [graphic_id for graphic_id, record in sorted(graphics_repo.graphics.items()) if needs_reanalysis(record)] == ["g4", "g5"]
