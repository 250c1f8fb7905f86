"""Generic resumable scheduler: queue building, dispatch, outcome tracking."""
