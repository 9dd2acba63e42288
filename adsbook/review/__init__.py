"""Review → finalize workflow: proposal action refs, patches, merge and execution selection."""
