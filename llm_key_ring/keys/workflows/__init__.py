"""Operations exposed to the CLI and other front-ends."""
