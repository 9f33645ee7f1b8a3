"""Learning roadmaps and enrollments."""
