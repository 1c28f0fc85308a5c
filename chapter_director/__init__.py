"""Chapter director — narrative event dispatch for sandbox and live backends."""
