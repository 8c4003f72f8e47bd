"""Account authentication for the PhishSim operator API."""
