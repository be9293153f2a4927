"""Document ingestion pipeline for Lambda processing

Each stage is deployed as a standalone Lambda function and triggered by its
own event source:

1. IngestionTrigger: S3 ObjectCreated -> validate -> start Textract job
2. ExtractionCompletionHandler: Textract SNS notification -> store results
3. ExtractionIndexer: DynamoDB stream (EXTRACTION_COMPLETED) -> chunk ->
   embed with Bedrock -> write to S3 Vectors
4. StaleExtractionReaper: scheduled sweep of documents whose extraction
   never finished

Stages never call each other; they communicate through the status ledger.
"""
