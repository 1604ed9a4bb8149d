# Services package init
"""
ScreenShelf Backend - Services Layer
======================================

What:  Pipeline, adapters and retrieval logic between the routes and the
       external systems (database, Tesseract, text-generation provider).
How:   Plain classes built once per application by app.dependencies and
       handed to routes through FastAPI dependencies.

Service Inventory:
    - UploadPipeline (upload_service):        temp file → OCR → describe → store
    - TempFileService (file_service):         temp-file lifecycle for uploads
    - TesseractOcrService (ocr_service):      OCR adapter
    - DescriptionGenerator (description_service): OCR text → two-field summary
    - TextGenerationService (llm_base):       abstract chat-completion client
    - OpenAIChatService (openai_service):     httpx + tenacity + circuit breaker
    - BlobStore (blob_store):                 chunked binary store on SQLAlchemy
    - ScreenshotService (screenshot_service): listing and single-item reads
"""
