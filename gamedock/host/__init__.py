"""Host state readers (mount table, unix sockets)."""
