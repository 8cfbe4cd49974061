"""Framework-agnostic domain models and error taxonomy."""
