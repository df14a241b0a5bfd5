"""SQLAlchemy models for courses, jobs and graphics."""
