"""Data-access repositories."""

from jobspine.core.repositories.jobs import JobCreate, JobRepository

__all__ = ["JobCreate", "JobRepository"]
