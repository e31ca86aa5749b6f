"""Graph-augmented hybrid recall over uploaded documents."""
