"""Applications, screening, registration and trainee records."""
