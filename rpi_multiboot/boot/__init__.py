"""Boot configuration handling: patchers, labels and shadow directories."""
