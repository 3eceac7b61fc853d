# Pure analysis engines — aggregation, scoring, zones, distribution, breakouts, proximity, timeline
