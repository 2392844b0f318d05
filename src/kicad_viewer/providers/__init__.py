"""File providers that supply raw document bytes."""
