"""Fee types, the financial queue and trainee accounts."""
