"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from app.ai.circuit_breaker import CircuitBreaker


def get_vision_breaker(request: Request) -> CircuitBreaker:
  """Return the process-wide breaker built during startup."""
  breaker = getattr(request.app.state, "vision_breaker", None)
  if breaker is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is still starting.")
  return breaker
