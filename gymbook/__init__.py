"""GymBook - authentication and database-access core of the gym booking API."""

# Application version (SemVer), reported by the health endpoint.
__version__ = "1.0.0"
__license__ = "MIT"
