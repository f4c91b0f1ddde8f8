"""Keys, errors, Lie-group math, the assignment store and the factor container."""
