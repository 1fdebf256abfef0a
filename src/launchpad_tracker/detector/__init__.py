"""Launch detection layer - token creation, trade classification and risk rules."""
