# Processing jobs
# Jobs are not stored here. A job is identified by the job_id used as reference_id on its
# credit_transactions rows: one 'usage' row when authorized, at most one 'refund' row.

"""
Lookups on public.credit_transactions:
- usage:  user_id = <user>, reference_id = <job_id>, type = 'usage'  (amount < 0)
- refund: user_id = <user>, reference_id = <job_id>, type = 'refund' (amount > 0)
"""
