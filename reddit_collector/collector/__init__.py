"""HTTP access, pagination and window sizing."""
