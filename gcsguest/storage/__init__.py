"""Mount, unmount, SCSI and device-mapper helpers for the guest."""