"""Detection engines: indicators, detectors, insight store and orchestrator."""
