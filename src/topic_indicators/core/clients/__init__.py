"""External metric provider clients (OpenAlex, Wikipedia)."""
