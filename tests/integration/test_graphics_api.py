import os

os.environ.setdefault("COURSEGEN_ALLOWED_ORIGINS", "http://localhost")

import anyio  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.ai.circuit_breaker import CircuitBreaker  # noqa: E402
from app.ai.contracts import GraphicAnalysis  # noqa: E402
from app.api.deps import get_vision_breaker  # noqa: E402
from app.main import app  # noqa: E402

PAGES = ["Chapter 1 Cells\nA diagram of the cell membrane.", "The membrane chart compares transport rates."]


def _analysis(payload):
  return GraphicAnalysis(graphic_type="chart", description="Transport rates by molecule size", confidence=0.95, elements=["x axis", "legend"], related_concepts=["diffusion"])


@pytest.fixture
def breaker() -> CircuitBreaker:
  return CircuitBreaker("vision", failure_threshold=2, cooldown_seconds=60)


@pytest.fixture
def runner(fake_runner):
  return fake_runner({"graphic_analysis": _analysis})


@pytest.fixture
def client(monkeypatch, courses_repo, graphics_repo, breaker, runner):
  for module in ("app.services.courses", "app.services.graphics"):
    monkeypatch.setattr(f"{module}._get_courses_repo", lambda settings: courses_repo)
    monkeypatch.setattr(f"{module}._get_graphics_repo", lambda settings: graphics_repo)
  monkeypatch.setattr("app.services.graphics._build_reanalysis_runner", lambda settings, breaker: runner)
  app.dependency_overrides[get_vision_breaker] = lambda: breaker
  try:
    yield TestClient(app)
  finally:
    app.dependency_overrides.clear()


def _create(client: TestClient) -> str:
  graphics = [
    {"pageNumber": 1, "imageUri": "gs://bucket/membrane.png", "graphicType": "diagram", "description": "Cell membrane", "confidence": 0.97, "elements": ["lipid bilayer"]},
    {"pageNumber": 2, "imageUri": "gs://bucket/rates.png", "mimeType": "image/jpeg"},
  ]
  response = client.post("/v1/courses", json={"title": "Biology", "pages": PAGES, "graphics": graphics})
  assert response.status_code == 200, response.text
  return response.json()["courseId"]


def test_list_graphics_flags_weak_analysis(client) -> None:
  course_id = _create(client)

  body = client.get(f"/v1/courses/{course_id}/graphics").json()

  assert body["courseId"] == course_id
  assert [(graphic["pageNumber"], graphic["needsReanalysis"]) for graphic in body["graphics"]] == [(1, False), (2, True)]
  assert "stats" not in body
  assert "elements" not in body["graphics"][1]


def test_debug_listing_includes_stats_and_breaker_state(client) -> None:
  course_id = _create(client)

  stats = client.get(f"/v1/courses/{course_id}/graphics", params={"debug": "true"}).json()["stats"]

  assert (stats["total"], stats["needsReanalysis"]) == (2, 1)
  assert stats["byType"] == {"diagram": 1, "unknown": 1}
  assert stats["breaker"]["state"] == "closed"


def test_reanalyze_updates_weak_graphics_and_resets_breaker(client, graphics_repo, breaker, runner) -> None:
  course_id = _create(client)

  async def _boom() -> None:
    raise RuntimeError("vision outage")

  for _ in range(2):
    with pytest.raises(RuntimeError):
      anyio.run(breaker.call, _boom)
  assert breaker.state == "open"

  response = client.post(f"/v1/courses/{course_id}/graphics/reanalyze")

  assert response.status_code == 200
  assert response.json() == {"success": True, "reanalyzed": 1, "message": "Reanalyzed 1 of 1 graphics."}
  assert breaker.state == "closed"
  assert runner.calls == ["graphic_analysis"]
  updated = next(record for record in graphics_repo.graphics.values() if record.page_number == 2)
  assert (updated.graphic_type, updated.elements, updated.related_concepts) == ("chart", ["x axis", "legend"], ["diffusion"])


def test_reanalyze_with_nothing_pending(client, graphics_repo, runner) -> None:
  course_id = _create(client)
  client.post(f"/v1/courses/{course_id}/graphics/reanalyze")

  response = client.post(f"/v1/courses/{course_id}/graphics/reanalyze")

  assert response.json() == {"success": True, "reanalyzed": 0, "message": "No graphics need reanalysis."}
  assert runner.calls == ["graphic_analysis"]


def test_unknown_course_graphics_return_404(client) -> None:
  assert client.get("/v1/courses/missing/graphics").status_code == 404
  assert client.post("/v1/courses/missing/graphics/reanalyze").json()["detail"] == "Course not found."
