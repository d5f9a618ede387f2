# qgen/jobs: job lifecycle - record, reducer, poller, submission and the
# interactive controller.
#
# Import from the submodules directly; this package stays import-free so
# qgen.api can depend on qgen.jobs.models without a cycle.
