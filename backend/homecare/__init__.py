"""HomeCare subscription usage service."""
