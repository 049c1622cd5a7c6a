"""Media conversion and delivery pipeline."""
