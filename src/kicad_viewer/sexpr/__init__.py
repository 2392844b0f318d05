"""Generic S-expression tokenizer, parser and writer."""
