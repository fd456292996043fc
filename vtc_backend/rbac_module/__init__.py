"""Users, organizations, roles and the module permission matrix."""
