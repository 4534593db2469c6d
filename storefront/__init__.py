"""Venue aggregation and enrichment for the event storefront."""
