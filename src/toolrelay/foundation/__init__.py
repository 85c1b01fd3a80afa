"""Foundation - configuration, errors, core data model, and the tool registry."""
