"""Document intelligence ingestion pipeline

Uploads PDFs to S3, extracts text with Textract, chunks and embeds it with
Bedrock, and writes the chunks into an S3 Vectors index.
"""
