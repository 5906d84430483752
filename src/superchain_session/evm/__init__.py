"""EVM building blocks for multi-chain sessions."""
