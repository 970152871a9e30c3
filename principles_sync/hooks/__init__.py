"""Git integration — hook installation and the pre-commit formatter."""
