"""Assessment and submission lifecycles: pure transition tables plus compare-and-set persistence."""
