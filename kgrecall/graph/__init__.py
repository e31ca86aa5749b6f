"""Knowledge-graph model and Neo4j store."""
