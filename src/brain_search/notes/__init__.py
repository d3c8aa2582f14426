"""Note store boundary and wikilink handling."""
