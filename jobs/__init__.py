"""Jobs batch del bridge."""
