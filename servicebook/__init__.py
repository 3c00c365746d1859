"""Vehicle maintenance intelligence for the shop back office."""
