"""Grammar-neutral construction analysis: walker, classifier and emitter."""
