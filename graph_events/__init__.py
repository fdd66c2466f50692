"""Graph directory change notifications delivered through Event Grid."""
