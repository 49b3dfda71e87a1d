"""HTTP API for quoting and executing supertransactions."""
