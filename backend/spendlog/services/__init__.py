"""Job store, submission, queue publishing, consumer and extraction services."""
