"""Infrastructure shared by the backend services (settings, logging, db, workers)."""
