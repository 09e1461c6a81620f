"""rehearser: spaced-repetition tracker for algorithm practice."""
