"""Public storage bucket indexer.

Fingerprints bucket URLs, walks their listing pages and streams every
object key to one output per bucket, many buckets at a time.

Key modules:
    resolver        -- resolve(): URL -> bucket variant
    base            -- Bucket abstract base class
    buckets         -- S3, Amazon, Spaces, Google, Azure, Firebase variants
    paginator       -- paginate() and the Paginator state machine
    pipeline        -- IndexingJob, IndexingPipeline, run_indexing()
    controller      -- JobSlotController bounding concurrent sweeps
    shutdown        -- ShutdownRegistry and ShutdownListener
    sinks           -- Sink, FileSink, MemorySink, FileSinkFactory
    progress        -- ProgressCounters shared by jobs and reporter
    reporter        -- ProgressReporter background status thread
    client          -- HttpClient (requests / curl_cffi)
    backoff         -- BackoffStrategy for fetch retries
    models          -- PageResult, JobResult, Summary and friends
    config          -- IndexerConfig run settings
    errors          -- error taxonomy
"""
