"""RDF helpers and SPARQL engine integration."""
